# Models package — import all models here so Alembic can discover them.

from crm.models.lead import Lead  # noqa: F401
from crm.models.contact_history import ContactHistory  # noqa: F401
from crm.models.task import Task  # noqa: F401
from crm.models.email_template import EmailTemplate  # noqa: F401
from crm.models.scheduled_email import ScheduledEmail  # noqa: F401
