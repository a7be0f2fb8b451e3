"""Database models — re-exports all models.

Import from here:  from agencyops.models import User, Client, ...
Or from submodules: from agencyops.models.churn import ChurnRecord
"""

from .base import Base  # noqa: F401

# Auth & Users
from .auth import User  # noqa: F401

# Clients, onboarding state, billing
from .clients import (  # noqa: F401
    ActiveClientBilling,
    Client,
    ClientOnboarding,
    ClientProductValue,
)

# Task boards scanned for delays
from .tasks import AdsTask, DepartmentTask, KanbanCard, OnboardingTask  # noqa: F401

# Delay notifications & justifications
from .delays import DelayJustification, DelayNotification  # noqa: F401

# Churn workflow
from .churn import (  # noqa: F401
    CLIENT_SCOPE_KEY,
    ChurnNotification,
    ChurnNotificationDismissal,
    ChurnRecord,
)
