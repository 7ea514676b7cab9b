"""
Organization quote engine.

Turns the contribution stream of a project into one cost quote per eligible
organization. Pure math: the organizations' price tables and the
contributions are handed in, nothing is read or cached between calls.

    cost  = round2(workforce cost + composite cost + common material cost)
    final = round2(cost + cost × markup)          (markup defaults to 25%)

Rounding is ROUND_HALF_UP on Decimal.
"""

import enum
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .models import ResourceType, RoleType
from .schemas import Contribution, NotIncludedReport, NotIncludedResource, Organization, Quote

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value or 0))


def round2(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def apply_markup(cost, markup_pct) -> Decimal:
    """round2(cost + cost × markup_pct / 100)"""
    cost = round2(cost)
    return round2(cost + cost * to_decimal(markup_pct) / Decimal(100))


class PriceResolution(str, enum.Enum):
    PRICED = "priced"
    MISSING = "missing"
    # Entry exists but its price sub-field is absent. The resource is reported
    # as not included against the owner of the first entry in the lookup.
    DEGRADED = "degraded"


class PriceLookup:
    """resource id -> (owning organization id, price) for one organization."""

    def __init__(self, organization_id: str):
        self.organization_id = organization_id
        self._entries: Dict[str, Tuple[str, Optional[Decimal]]] = {}

    def add(self, resource_id: str, price) -> None:
        self._entries[resource_id] = (
            self.organization_id,
            None if price is None else to_decimal(price),
        )

    def __len__(self):
        return len(self._entries)

    def resolve(self, resource_id: str) -> Tuple[PriceResolution, Optional[Decimal], str]:
        entry = self._entries.get(resource_id)
        if entry is None:
            return PriceResolution.MISSING, None, self.organization_id
        owner_id, price = entry
        if price is None:
            return PriceResolution.DEGRADED, None, self._first_entry_owner()
        return PriceResolution.PRICED, price, owner_id

    def _first_entry_owner(self) -> str:
        owner_id, _ = next(iter(self._entries.values()))
        return owner_id


class _OrganizationTotals:
    """Per-call accumulator for one organization."""

    def __init__(self):
        self.workforce_cost = Decimal(0)
        self.composite_cost = Decimal(0)
        self.not_included_workforces: List[NotIncludedResource] = []
        self.not_included_composites: List[NotIncludedResource] = []

    def mark_not_included(self, contribution: Contribution) -> None:
        bucket = (self.not_included_composites
                  if contribution.kind == ResourceType.COMPOSITE
                  else self.not_included_workforces)
        if any(item.id == contribution.resource_id for item in bucket):
            return
        bucket.append(NotIncludedResource(id=contribution.resource_id,
                                          name=contribution.resource_name))


class OrganizationQuoteEngine:
    """
    Produces per-organization quotes for a project.

    Projects containing any composite resource can only be quoted by
    fabricators; otherwise fabricators and contractors are both eligible.
    """

    DEFAULT_MARKUP_PCT = 25.0
    QUOTING_ROLES = (RoleType.FABRICATOR, RoleType.CONTRACTOR)

    def __init__(self, markup_pct: Optional[float] = None):
        self.markup_pct = self.DEFAULT_MARKUP_PCT if markup_pct is None else markup_pct

    def build_quotes(self, contributions: Iterable[Contribution],
                     organizations: Sequence[Organization]) -> List[Quote]:
        """
        Quote every eligible organization that prices at least one of the
        project's workforces or composites.

        Returns quotes in the order of `organizations`. Organizations whose
        workforce and composite costs are both zero are left out.
        """
        contributions = list(contributions)
        eligible_roles = self.eligible_roles(contributions)

        lookups: Dict[str, PriceLookup] = {}
        totals: Dict[str, _OrganizationTotals] = {}
        for org in organizations:
            if org.role_type not in eligible_roles:
                continue
            lookup = self._build_lookup(org)
            if not len(lookup):
                continue
            lookups[org.id] = lookup
            totals[org.id] = _OrganizationTotals()

        material_cost = Decimal(0)
        for contribution in contributions:
            count = to_decimal(contribution.total_count)
            if contribution.kind == ResourceType.MATERIAL:
                material_cost += to_decimal(contribution.unit_price) * count
                continue

            for org_id, lookup in lookups.items():
                resolution, price, owner_id = lookup.resolve(contribution.resource_id)
                if resolution == PriceResolution.PRICED:
                    amount = price * count
                    if contribution.kind == ResourceType.COMPOSITE:
                        # Composites are billed as material as well
                        material_cost += amount
                        totals[owner_id].composite_cost += amount
                    else:
                        totals[owner_id].workforce_cost += amount
                    continue

                if resolution == PriceResolution.DEGRADED:
                    logger.warning(
                        "Organization %s has no price for %s %s, reporting as not included",
                        org_id, contribution.kind.value, contribution.resource_id,
                    )
                totals.setdefault(owner_id, _OrganizationTotals()).mark_not_included(contribution)

        quotes = []
        for org in organizations:
            org_totals = totals.get(org.id)
            if org.id not in lookups or org_totals is None:
                continue
            if not (org_totals.workforce_cost or org_totals.composite_cost):
                continue
            quotes.append(self._build_quote(org, org_totals, material_cost))
        return quotes

    def eligible_roles(self, contributions: Iterable[Contribution]) -> Tuple[RoleType, ...]:
        if any(c.kind == ResourceType.COMPOSITE for c in contributions):
            return (RoleType.FABRICATOR,)
        return self.QUOTING_ROLES

    def not_included_resources(self, contributions: Iterable[Contribution],
                               specification_ids: Iterable[str],
                               composite_ids: Iterable[str]) -> NotIncludedReport:
        """Workforces and composites one organization does not price, first occurrence first."""
        priced = {
            ResourceType.WORKFORCE: set(specification_ids or ()),
            ResourceType.COMPOSITE: set(composite_ids or ()),
        }
        totals = _OrganizationTotals()
        for contribution in contributions:
            if contribution.kind == ResourceType.MATERIAL:
                continue
            if contribution.resource_id not in priced[contribution.kind]:
                totals.mark_not_included(contribution)
        return NotIncludedReport(
            not_included_workforces=totals.not_included_workforces,
            not_included_composites=totals.not_included_composites,
        )

    def _build_lookup(self, org: Organization) -> PriceLookup:
        lookup = PriceLookup(org.id)
        for resource_id, price in org.specifications.items():
            lookup.add(resource_id, price)
        if org.role_type == RoleType.FABRICATOR:
            for resource_id, price in org.composites.items():
                lookup.add(resource_id, price)
        return lookup

    def _build_quote(self, org: Organization, org_totals: _OrganizationTotals,
                     material_cost: Decimal) -> Quote:
        cost = round2(org_totals.workforce_cost + org_totals.composite_cost + material_cost)
        is_fabricator = org.role_type == RoleType.FABRICATOR
        return Quote(
            organization_id=org.id,
            name=org.name,
            photo=org.photo,
            role_type=org.role_type,
            cost=apply_markup(cost, self.markup_pct),
            not_included_workforces=org_totals.not_included_workforces,
            not_included_composites=org_totals.not_included_composites if is_fabricator else None,
        )
