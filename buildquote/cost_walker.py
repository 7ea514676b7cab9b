"""
Element cost walker — flattens a project's element lists into contributions.

Traversal order is element → product result → resource, build list first,
then demolish list. Not-included reporting keeps the first occurrence of
each resource, so callers must consume the stream in this order.
"""

import logging
from typing import Iterable, Iterator

from .models import ResourceType
from .resource_classifier import classify, resource_kind
from .schemas import BuildingElementUsage, Contribution

logger = logging.getLogger(__name__)


class ElementCostWalker:

    def walk(self, build_elements: Iterable[BuildingElementUsage],
             demolish_elements: Iterable[BuildingElementUsage] = ()) -> Iterator[Contribution]:
        """
        Yield every resource contribution of the build list, then the
        demolish list. Demolish usages already carry the element's demolished
        recipe, so both lists are walked the same way.
        """
        yield from self._walk_list(build_elements)
        yield from self._walk_list(demolish_elements)

    def _walk_list(self, elements: Iterable[BuildingElementUsage]) -> Iterator[Contribution]:
        for usage in elements or ():
            if not usage.product_results:
                continue
            for pr_usage in usage.product_results:
                product_result = pr_usage.product_result
                if product_result is None:
                    logger.debug("Skipping unresolved product result %s on element %s",
                                 pr_usage.product_result_id, usage.element_id)
                    continue
                for resource_usage in product_result.resources:
                    contribution = classify(resource_usage, pr_usage.count, usage.count)
                    if contribution is not None:
                        yield contribution

    # --- Rollups over archived lists ---

    def labor_time(self, elements: Iterable[BuildingElementUsage]) -> float:
        """Σ element count × Σ (product result count × product result time)."""
        total = 0.0
        for usage in elements or ():
            pr_time = 0.0
            for pr_usage in usage.product_results:
                if pr_usage.product_result is None:
                    continue
                pr_time += pr_usage.count * pr_usage.product_result.time
            total += pr_time * usage.count
        return total

    def material_price(self, elements: Iterable[BuildingElementUsage]) -> float:
        """
        Catalog price of every non-workforce resource. Composites count at
        their catalog price here; organization composite rates only apply
        to quotes.
        """
        total = 0.0
        for usage in elements or ():
            for pr_usage in usage.product_results:
                if pr_usage.product_result is None:
                    continue
                for resource_usage in pr_usage.product_result.resources:
                    resource = resource_usage.resource
                    if resource is None or resource_kind(resource.type) == ResourceType.WORKFORCE:
                        continue
                    total += resource_usage.count * pr_usage.count * usage.count * resource.price
        return total
