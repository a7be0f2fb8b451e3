"""
roles.py — Role slugs and role groups used across the lifecycle engine.

Business Rules:
- Role slugs are stored as-is on users, notifications and justifications
- CEO is the only privileged role (archive/restore justifications)
- Labels are display-only; never compare against them

Called by: services/notification_router.py, services/justification_service.py,
           services/churn_service.py, services/task_sources.py
Depends on: nothing
"""

from __future__ import annotations

CEO = "ceo"
PROJECT_MANAGER = "gestor_projetos"
ADS_MANAGER = "gestor_ads"
CLIENT_SUCCESS = "sucesso_cliente"
FINANCE = "financeiro"
SALES_CONSULTANT = "consultor_comercial"
CRM_MANAGER = "gestor_crm"
DESIGN = "design"
VIDEO_EDITOR = "editor_video"
DEVS = "devs"
PRODUCTION = "produtora"
ACTRESSES = "atrizes_gravacao"
HR = "rh"

UNKNOWN = "unknown"

ROLE_LABELS: dict[str, str] = {
    CEO: "CEO",
    PROJECT_MANAGER: "Gestor de Projetos",
    ADS_MANAGER: "Gestor de Ads",
    CLIENT_SUCCESS: "Sucesso do Cliente",
    DESIGN: "Design",
    VIDEO_EDITOR: "Editor de Vídeo",
    DEVS: "Desenvolvedor",
    FINANCE: "Financeiro",
    SALES_CONSULTANT: "Consultor Comercial",
    CRM_MANAGER: "Gestor de CRM",
    PRODUCTION: "Produtora",
    ACTRESSES: "Atrizes/Gravação",
    HR: "RH",
}

# Roles that see the churn alert inbox
CHURN_NOTIFICATION_ROLES = frozenset(
    {CEO, ADS_MANAGER, PROJECT_MANAGER, CLIENT_SUCCESS, FINANCE, SALES_CONSULTANT}
)

# Roles that get a churn-analysis task when they acknowledge a churn alert
CHURN_TASK_ROLES = frozenset({ADS_MANAGER, PROJECT_MANAGER, CLIENT_SUCCESS})


def role_label(role: str | None) -> str:
    """Human-readable label, falling back to the raw slug."""
    if not role:
        return "Usuário"
    return ROLE_LABELS.get(role, role)


def is_privileged(role: str | None) -> bool:
    return role == CEO
