"""
geo_validator.py

Spatial coherence of a batch of points already in the target projected system.
A municipal emergency plan covers one municipality, so a point far from all of
its siblings is more likely a typo than a real location.

Distances are plain Euclidean metres (scipy cdist); clusters are the
single-linkage components found by DBSCAN with min_samples=1.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

import numpy as np
from scipy.spatial.distance import cdist
from sklearn.cluster import DBSCAN

LOG = logging.getLogger(__name__)

DEFAULT_MAX_DISTANCE = 20_000.0
REPORT_ISSUE_DISTANCE = 50_000.0


@dataclass
class GeographicValidation:
    index: int
    name: str
    x: float
    y: float
    score: int = 100
    nearest_distance: float = 0.0
    average_distance: float = 0.0
    is_outlier: bool = False
    alerts: List[str] = field(default_factory=list)


def distance_matrix(points: Sequence[Tuple[float, float]]) -> np.ndarray:
    coords = np.asarray(points, dtype=float).reshape(-1, 2)
    return cdist(coords, coords)


def validate_geographic_coherence(points: Sequence[Tuple[float, float, str]],
                                  max_distance: float = DEFAULT_MAX_DISTANCE) -> List[GeographicValidation]:
    """
    Per point: nearest and mean distance to the others, outlier flag, score.

    - nearest > max_distance: -40 and critical alert (outlier)
    - nearest > max_distance/2: -15
    - mean > 1.5 * max_distance with more than 3 neighbours: -10 (isolated cluster)
    A single point has nothing to compare against and keeps full score.
    """
    if not points:
        return []
    if len(points) == 1:
        x, y, name = points[0]
        return [GeographicValidation(
            index=0, name=name, x=x, y=y,
            alerts=["ℹ️ Elemento único, no se puede validar proximidad espacial"],
        )]

    distances = distance_matrix([(p[0], p[1]) for p in points])
    n = len(points)
    results = []
    for i, (x, y, name) in enumerate(points):
        others = np.delete(distances[i], i)
        nearest = float(others.min())
        average = float(others.mean())
        score = 100
        alerts = []

        if nearest > max_distance:
            alerts.append(
                f"🚨 ERROR GEOGRÁFICO CRÍTICO: Elemento a {nearest / 1000:.1f}km del más cercano "
                f"(máximo permitido: {max_distance / 1000:g}km)"
            )
            score -= 40
        elif nearest > max_distance * 0.5:
            alerts.append(f"⚠️ Advertencia: Elemento a {nearest / 1000:.1f}km del más cercano")
            score -= 15

        if average > max_distance * 1.5 and n - 1 > 3:
            alerts.append(f"⚠️ Posible cluster aislado: distancia promedio {average / 1000:.1f}km")
            score -= 10

        results.append(GeographicValidation(
            index=i,
            name=name,
            x=x,
            y=y,
            score=max(0, score),
            nearest_distance=nearest,
            average_distance=average,
            is_outlier=nearest > max_distance,
            alerts=alerts,
        ))
    return results


def nearest_neighbor_distances(points: Sequence[Tuple[float, float]]) -> List[float]:
    """Nearest-neighbour distance per point; empty for fewer than two points."""
    if len(points) < 2:
        return []
    distances = distance_matrix(points)
    np.fill_diagonal(distances, np.inf)
    return distances.min(axis=1).tolist()


def identify_geographic_clusters(points: Sequence[Tuple[float, float]],
                                 max_cluster_distance: float = DEFAULT_MAX_DISTANCE) -> List[List[int]]:
    """
    Groups of indexes chained together by gaps <= max_cluster_distance,
    ordered by their smallest index.
    """
    if not points:
        return []
    coords = np.asarray(points, dtype=float).reshape(-1, 2)
    labels = DBSCAN(eps=max_cluster_distance, min_samples=1).fit(coords).labels_
    clusters: Dict[int, List[int]] = {}
    for index, label in enumerate(labels):
        clusters.setdefault(int(label), []).append(index)
    return sorted(clusters.values(), key=lambda members: members[0])


def generate_geographic_report(results: Sequence[GeographicValidation]) -> dict:
    outliers = sum(1 for r in results if r.is_outlier)
    distances = [r.nearest_distance for r in results if r.nearest_distance > 0]
    max_distance = max(distances) if distances else 0.0
    return {
        "total_elements": len(results),
        "outliers": outliers,
        "average_nearest_distance": sum(distances) / len(distances) if distances else 0.0,
        "max_distance": max_distance,
        "has_geographic_issues": outliers > 0 or max_distance > REPORT_ISSUE_DISTANCE,
    }
