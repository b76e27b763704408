"""Seed data and fixed field tables used by the reconciliation jobs."""

from typing import Any, Dict, Iterable, List


# =============================================================================
# Roles
# =============================================================================

PERMISSION_ACTIONS: Dict[str, tuple] = {
    "dashboard": ("view", "view_all_teams"),
    "employees": ("view", "create", "edit", "delete", "view_sensitive", "export"),
    "absences": ("view", "create", "edit", "delete", "approve", "view_all"),
    "planning": ("view", "edit", "create", "confirm"),
    "machines": ("view", "create", "edit", "delete", "configure_processes"),
    "maintenance": ("view", "create", "edit", "complete"),
    "reports": ("view", "export", "advanced"),
    "configuration": ("view", "edit_general", "manage_roles", "manage_users", "manage_teams"),
    "hrm": ("view", "manage_contracts", "manage_onboarding", "manage_performance"),
    "incentives": ("view", "configure", "evaluate"),
    "documents": ("view", "upload", "manage"),
}

ALL = "*"


def build_permissions(granted: Dict[str, Iterable[str]]) -> Dict[str, Dict[str, bool]]:
    """Expand ``{module: granted actions}`` into the full boolean matrix."""
    matrix = {}
    for module, actions in PERMISSION_ACTIONS.items():
        allowed = set(granted.get(module, ()))
        matrix[module] = {action: ALL in allowed or action in allowed for action in actions}
    return matrix


def _role(code: str, name: str, description: str, level: int, granted: Dict[str, Iterable[str]]) -> Dict[str, Any]:
    return {
        "code": code,
        "name": name,
        "description": description,
        "level": level,
        "is_system_role": True,
        "active": True,
        "permissions": build_permissions(granted),
    }


DEFAULT_ROLES: List[Dict[str, Any]] = [
    _role("ADMIN", "Administrador", "Acceso completo al sistema", 100, {
        module: (ALL,) for module in PERMISSION_ACTIONS
    }),
    _role("SHIFT_MANAGER", "Jefe de Turno", "Gestión de equipo y planificación de turno", 50, {
        "dashboard": ("view",),
        "employees": ("view",),
        "absences": ("view", "create", "approve"),
        "planning": ("view", "edit", "create"),
        "machines": ("view",),
        "maintenance": ("view", "create"),
        "reports": ("view",),
        "incentives": ("view",),
        "documents": ("view",),
    }),
    _role("PROD_SUPERVISOR", "Supervisor de Producción", "Supervisión de producción y máquinas", 40, {
        "dashboard": ("view",),
        "employees": ("view",),
        "absences": ("view", "create"),
        "planning": ("view", "edit"),
        "machines": ("view", "edit", "configure_processes"),
        "maintenance": ("view", "create", "edit"),
        "reports": ("view", "export"),
        "incentives": ("view",),
        "documents": ("view", "upload"),
    }),
    _role("HR_MANAGER", "Responsable RRHH", "Gestión completa de recursos humanos", 60, {
        "dashboard": ("view", "view_all_teams"),
        "employees": ("view", "create", "edit", "view_sensitive", "export"),
        "absences": (ALL,),
        "planning": ("view",),
        "machines": ("view",),
        "reports": (ALL,),
        "configuration": ("view", "edit_general", "manage_users", "manage_teams"),
        "hrm": (ALL,),
        "incentives": (ALL,),
        "documents": (ALL,),
    }),
    _role("MAINTENANCE_TECH", "Técnico de Mantenimiento", "Gestión de mantenimiento de máquinas", 30, {
        "dashboard": ("view",),
        "absences": ("create",),
        "planning": ("view",),
        "machines": ("view", "edit"),
        "maintenance": (ALL,),
        "reports": ("view",),
        "documents": ("view", "upload"),
    }),
    _role("OPERATOR", "Operario", "Acceso básico de consulta", 10, {
        "dashboard": ("view",),
        "absences": ("view", "create"),
        "planning": ("view",),
        "machines": ("view",),
        "incentives": ("view",),
        "documents": ("view",),
    }),
]


# =============================================================================
# Lockers & Departments
# =============================================================================

# Installed lockers per known locker room, matched by name fragment
LOCKER_ROOM_CAPACITY = (
    ("FEMENINO PLANTA BAJA", 56),
    ("FEMENINO PLANTA ALTA", 163),
    ("MASCULINO", 28),
)
DEFAULT_LOCKER_ROOM_CAPACITY = 100


def locker_room_capacity(name: str) -> int:
    upper = (name or "").upper()
    for fragment, capacity in LOCKER_ROOM_CAPACITY:
        if fragment in upper:
            return capacity
    return DEFAULT_LOCKER_ROOM_CAPACITY


DEFAULT_DEPARTMENT_COLOR = "#64748b"


# =============================================================================
# Machines
# =============================================================================

# Legacy Machine fields copied unchanged onto the new master record
MACHINE_COPIED_FIELDS = (
    "marca",
    "modelo",
    "numero_serie",
    "fecha_compra",
    "tipo",
    "ubicacion",
    "descripcion",
    "parametros_sobres",
    "parametros_frascos",
    "programa_mantenimiento",
)

# Master list field -> legacy list field
MACHINE_LIST_FIELDS = {
    "articulos_fabricables": "articulos_ids",
    "imagenes": "imagenes",
    "archivos_adjuntos": "archivos_adjuntos",
    "historico_produccion": "historico_articulos",
}

MACHINE_MASTER_DEFAULTS = {
    "estado_operativo": "Operativa",
    "estado_sincronizacion": "Sincronizado",
}

DEFAULT_PROCESS_OPERATORS = 1
