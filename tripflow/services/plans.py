"""
Plan catalog for TripFlow Pro billing.
Defines the Free, Pro Individuel and Pro Entreprise tiers.
"""
import enum
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

# Sentinel used by max_trips, max_users and price
UNLIMITED = -1


class PlanType(str, enum.Enum):
    """Available subscription plans (closed set)."""
    FREE = 'free'
    PRO_INDIVIDUAL = 'pro_individual'
    PRO_ENTERPRISE = 'pro_enterprise'


class SubscriptionStatus(str, enum.Enum):
    """Payment-provider aligned subscription statuses."""
    ACTIVE = 'active'
    TRIALING = 'trialing'
    PAST_DUE = 'past_due'
    CANCELED = 'canceled'


@dataclass(frozen=True)
class Plan:
    """Immutable plan definition."""
    id: PlanType
    name: str
    price: float  # 0 = free, -1 = contact us
    max_trips: int  # -1 = unlimited
    max_users: int  # -1 = unlimited
    features: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_unlimited(self) -> bool:
        return self.max_trips == UNLIMITED

    def to_dict(self) -> dict:
        """Serialize plan to dict."""
        return {
            'id': self.id.value,
            'name': self.name,
            'price': self.price,
            'max_trips': self.max_trips,
            'max_users': self.max_users,
            'features': list(self.features),
        }


PLANS: Dict[PlanType, Plan] = {
    PlanType.FREE: Plan(
        id=PlanType.FREE,
        name='Gratuit',
        price=0,
        max_trips=10,
        max_users=1,
        features=(
            '10 déplacements au total',
            'Notes de frais avec justificatifs',
            'Export PDF',
            'Envoi par email',
        ),
    ),
    PlanType.PRO_INDIVIDUAL: Plan(
        id=PlanType.PRO_INDIVIDUAL,
        name='TropFlow Pro Individuel',
        price=9.99,
        max_trips=UNLIMITED,
        max_users=1,
        features=(
            'Déplacements illimités',
            'Notes de frais avec justificatifs',
            'Export PDF',
            'Envoi par email avec factures jointes',
            'Support prioritaire',
        ),
    ),
    PlanType.PRO_ENTERPRISE: Plan(
        id=PlanType.PRO_ENTERPRISE,
        name='TropFlow Pro Entreprise',
        price=29.99,
        max_trips=UNLIMITED,
        max_users=UNLIMITED,
        features=(
            'Déplacements illimités',
            'Utilisateurs illimités',
            'Tableau de bord équipe',
            'Export comptable',
            'Support dédié',
        ),
    ),
}

# Display order for pricing pages
AVAILABLE_PLANS: List[Plan] = [
    PLANS[PlanType.FREE],
    PLANS[PlanType.PRO_INDIVIDUAL],
    PLANS[PlanType.PRO_ENTERPRISE],
]


def get_plan_by_id(plan_id, catalog: Optional[Dict[PlanType, Plan]] = None) -> Optional[Plan]:
    """Look up a plan by id. Returns None for anything outside the catalog.

    Args:
        plan_id: PlanType member or its string value
        catalog: Plan mapping to search (defaults to PLANS)

    Returns:
        Matching Plan, or None
    """
    catalog = PLANS if catalog is None else catalog
    try:
        key = PlanType(plan_id)
    except (ValueError, TypeError):
        return None
    return catalog.get(key)
