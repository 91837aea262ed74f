"""Domain exceptions raised by services and mapped to HTTP codes in create_app()."""


class NotFoundError(LookupError):
    """A referenced lead, task, or template does not exist (404)."""

    def __init__(self, kind, object_id):
        self.kind = kind
        self.object_id = object_id
        super().__init__(f"{kind} not found")


class EmailNotConfiguredError(RuntimeError):
    """SMTP credentials are missing (503)."""


class EmailSendError(RuntimeError):
    """The SMTP server rejected or failed the send (500)."""
