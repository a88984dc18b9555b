from app.modules.compliance.domain.registry import conditions

# Importing each module registers its conditions.
from . import account, database, firewall, general, instance, kubernetes, load_balancer, storage

__all__ = [
    "conditions",
    "account",
    "database",
    "firewall",
    "general",
    "instance",
    "kubernetes",
    "load_balancer",
    "storage",
]
