# SQLModel definitions, imported here to ensure metadata is populated for create_all.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .organization import Organization  # noqa: F401
from .user import User  # noqa: F401
from .user_org import UserOrg  # noqa: F401
from .project import Project, ProjectSettings  # noqa: F401
from .user_project import UserProject  # noqa: F401
from .work import Resource, Timesheet, Expense, Milestone, Deliverable, Variation  # noqa: F401
from .change_record import ChangeRecord  # noqa: F401
