"""
routers/ — HTTP surface of agencyops: delays, onboarding, churn.

Each module is a thin APIRouter over one service module. Service errors
(LookupError, PermissionError, ChurnTransitionError) are mapped to status
codes here; no business rule lives in a router.
"""
