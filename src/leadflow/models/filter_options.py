"""
Closed value sets accepted by Apollo's people search.

Only the selectors with a fixed vocabulary are listed here; titles, locations
and industries are free-form on the Apollo side.
"""
from __future__ import annotations

PERSON_SENIORITIES: tuple[str, ...] = (
    "owner",
    "founder",
    "c_suite",
    "partner",
    "vp",
    "head",
    "director",
    "manager",
    "senior",
    "entry",
    "intern",
)

EMPLOYEE_RANGES: tuple[str, ...] = (
    "1,10",
    "11,20",
    "21,50",
    "51,100",
    "101,200",
    "201,500",
    "501,1000",
    "1001,5000",
    "5001,10000",
    "10001,",
)
