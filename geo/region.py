from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class BoundingBox:
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    def contains(self, lat: float, lng: float) -> bool:
        if not (math.isfinite(lat) and math.isfinite(lng)):
            return False
        # 0/0 is what feeds emit for a missing coordinate.
        if lat == 0 or lng == 0:
            return False
        return (
            self.min_lat <= lat <= self.max_lat
            and self.min_lng <= lng <= self.max_lng
        )

    def as_query_bbox(self) -> str:
        return f"{self.min_lng},{self.min_lat},{self.max_lng},{self.max_lat}"


# Vermont with a small buffer around the state line.
VERMONT = BoundingBox(min_lat=42.6, max_lat=45.2, min_lng=-73.5, max_lng=-71.4)
