"""Local development entry point.

Usage:
    python run.py

Loads .env, then serves the JSON API on port 5001 with the reloader on.
For the CLI commands use `flask --app run <command>`, e.g.

    flask --app run seed-demo
    flask --app run send-scheduled-emails --dry-run
"""

from dotenv import load_dotenv

load_dotenv()  # Load .env before anything else

from crm import create_app  # noqa: E402

app = create_app()

if __name__ == "__main__":
    app.run(debug=True, host="0.0.0.0", port=5001)
