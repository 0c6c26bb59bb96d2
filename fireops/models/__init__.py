# Models package — import all models here so Alembic can discover them.

from fireops.models.user import Team, User  # noqa: F401
from fireops.models.invite import StaffInvite  # noqa: F401
from fireops.models.lead import Lead  # noqa: F401
from fireops.models.customer import (  # noqa: F401
    Customer,
    CustomerLink,
    CustomerLinkAccess,
)
from fireops.models.quote import Quote, QuoteAcceptance  # noqa: F401
from fireops.models.job import (  # noqa: F401
    ChecklistTemplate,
    Job,
    JobAssignment,
    JobChecklist,
    JobEvent,
    JobNote,
    JobPhoto,
)
from fireops.models.invoice import Invoice, InvoiceItem  # noqa: F401
from fireops.models.payment import Payment  # noqa: F401
from fireops.models.inspection import Deficiency, Inspection  # noqa: F401
from fireops.models.qr_code import QrCode, QrScan  # noqa: F401
from fireops.models.stripe_event import StripeEvent  # noqa: F401
from fireops.models.sequence import NumberSequence  # noqa: F401
from fireops.models.outbox import OutboxEmail  # noqa: F401
