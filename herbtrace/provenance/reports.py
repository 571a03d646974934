"""
Derived views over a stored provenance record.

These are pure functions of the record and are never persisted.
"""

from __future__ import annotations

from typing import Any

from ..schema import parse_datetime


def _sort_key(entry: dict[str, Any]) -> tuple[int, float]:
    date = entry.get("date")
    if not date:
        return (1, 0.0)
    return (0, parse_datetime(date, "date").timestamp())


def build_timeline(record: dict[str, Any]) -> list[dict[str, Any]]:
    """Chronological stage entries: collection, processing, testing, packaging."""
    timeline: list[dict[str, Any]] = []

    collection = record.get("collectionEvent")
    if collection:
        timeline.append(
            {
                "stage": "Collection",
                "date": collection["collectionDate"],
                "description": (
                    f"{collection['quantityKg']:g}kg of {collection['herbType']} collected by {collection['farmerName']}"
                ),
                "location": collection["gpsCoordinates"],
                "actor": collection["farmerName"],
            }
        )

    for step in record.get("processingSteps", []):
        timeline.append(
            {
                "stage": "Processing",
                "date": step["processStartTime"],
                "description": f"{step['processType']} at {step['facilityName']}",
                "details": (
                    f"{step['inputQuantityKg']:g}kg -> {step['outputQuantityKg']:g}kg "
                    f"({step['yieldPercentage']:.1f}% yield)"
                ),
                "actor": step["facilityName"],
            }
        )

    for test in record.get("qualityTests", []):
        timeline.append(
            {
                "stage": "Quality Testing",
                "date": test["testDate"],
                "description": f"{test['testType']} testing at {test['labName']}",
                "result": test.get("overallResult"),
                "actor": test["labName"],
            }
        )

    distribution = record.get("distributionInfo")
    if distribution:
        timeline.append(
            {
                "stage": "Packaging",
                "date": distribution.get("packageDate"),
                "description": "Packaged for distribution",
                "details": f"Package type: {distribution.get('packageType', 'unspecified')}",
                "actor": distribution.get("distributorName"),
            }
        )

    # stable sort keeps stage order for equal dates
    return sorted(timeline, key=_sort_key)


def completion_score(record: dict[str, Any]) -> int:
    score = 0
    if record.get("collectionEvent"):
        score += 25
    if record.get("processingSteps"):
        score += 25
    tests = record.get("qualityTests") or []
    if tests:
        score += 20
        if any(t.get("overallResult") == "Pass" for t in tests):
            score += 10
    if record.get("distributionInfo"):
        score += 20
    return min(100, score)


def with_derived(record: dict[str, Any]) -> dict[str, Any]:
    """Copy of record with timeline and completionScore attached."""
    result = dict(record)
    result["timeline"] = build_timeline(record)
    result["completionScore"] = completion_score(record)
    return result
