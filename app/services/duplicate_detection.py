"""
Duplicate Detection - geospatial lookup of open issues near a submission.

DESIGN PRINCIPLES:
- Same category, still open, within the radius (default 20m)
- Lookup goes through the geohash grid, never a scan of all open issues
- Read-only: the caller decides whether to reject or merge
"""

from app.models.issue import GeoPoint, Issue
from app.repositories.base import IssueRepository
from app.utils.geo import covering_cells, haversine_meters
from typing import Optional, Set, Tuple
import logging

logger = logging.getLogger(__name__)


class GeoDuplicateIndex:
    """
    Spatial index over open issues, backed by the geohash stored on each issue.
    """

    def __init__(self, issues: IssueRepository, radius_meters: float = 20.0, precision: int = 7):
        self.issues = issues
        self.radius_meters = radius_meters
        self.precision = precision

    def cells_for(self, point: GeoPoint, radius_meters: Optional[float] = None) -> Set[str]:
        radius = self.radius_meters if radius_meters is None else radius_meters
        return covering_cells(point.latitude, point.longitude, radius, self.precision)

    async def find_nearby_open_issue(
        self,
        point: GeoPoint,
        category: str,
        radius_meters: Optional[float] = None,
    ) -> Optional[Issue]:
        match = await self.find_nearest(point, category, radius_meters)
        return match[0] if match else None

    async def find_nearest(
        self,
        point: GeoPoint,
        category: str,
        radius_meters: Optional[float] = None,
    ) -> Optional[Tuple[Issue, float]]:
        """
        Nearest open same-category issue within the radius, with its distance.
        """
        radius = self.radius_meters if radius_meters is None else radius_meters
        candidates = await self.issues.list_open_in_cells(self.cells_for(point, radius), category)

        best: Optional[Tuple[Issue, float]] = None
        for issue in candidates:
            distance = haversine_meters(
                point.latitude, point.longitude,
                issue.location.latitude, issue.location.longitude,
            )
            if distance <= radius and (best is None or distance < best[1]):
                best = (issue, distance)

        if best:
            logger.info(f"Duplicate candidate for {category}: issue {best[0].id} at {best[1]:.1f}m")
        return best
