"""
Scheduling suggestion engine

suggest_assignments() ranks (technician, date, start time) candidates for one
job. It is a pure function of its arguments: nothing is read from the
database, HouseCall Pro or the clock, and no input is modified.

Ranking policy:
- travel distance is the shorter of the technician's home distance (driving
  miles when known, straight-line otherwise) and the distance to the closest
  job already on that technician's calendar for the day
- the start time sits right after or right before that closest job when it is
  within CLUSTER_RADIUS_MILES and the slot is free, otherwise it is the
  earliest free slot inside working hours and the preferred window
- confidence: avoid/never skill -> low, clustered within 10 mi or preferred
  skill within 15 mi -> high, within 25 mi -> medium, else low
"""

import math
import re
from dataclasses import dataclass
from typing import Optional, Sequence

from ..jobs.time_calculator import from_minutes, to_minutes
from .geo import haversine_miles, point_in_polygon
from .schemas import (
    Confidence,
    JobToSchedule,
    ScheduledJob,
    ServiceZone,
    SkillMatch,
    Suggestion,
    TechnicianCandidate,
)

CLUSTER_RADIUS_MILES = 15
NEARBY_RADIUS_MILES = 15
HIGH_CLUSTER_MILES = 10
HIGH_PREFERRED_MILES = 15
MEDIUM_MILES = 25
SLOT_STEP_MINUTES = 30
DEFAULT_EXISTING_JOB_MINUTES = 60

CONFIDENCE_RANK = {Confidence.HIGH: 0, Confidence.MEDIUM: 1, Confidence.LOW: 2}

SKILL_PHRASES = {
    "preferred": "prefers",
    "avoid": "prefers to avoid",
    "never": "should not be sent on",
}


def normalize_service_type(service_type: str) -> str:
    """'Tile & Grout Cleaning' -> 'tile_grout_cleaning'"""
    return re.sub(r"[^a-z0-9]+", "_", service_type.lower()).strip("_")


def skill_match_for(level: Optional[str]) -> SkillMatch:
    if level == "preferred":
        return SkillMatch.PREFERRED
    if level in ("avoid", "never"):
        return SkillMatch.AVOID
    return SkillMatch.NONE


def find_zone(lat: Optional[float], lng: Optional[float], zones: Sequence[ServiceZone]) -> Optional[str]:
    if lat is None or lng is None:
        return None
    for zone in zones:
        if len(zone.ring) >= 3 and point_in_polygon(lng, lat, zone.ring):
            return zone.name
    return None


def job_interval(job: ScheduledJob) -> Optional[tuple[int, int]]:
    """Busy minutes of an existing job; an end at or before the start runs past midnight"""
    if not job.scheduledTime:
        return None
    start = to_minutes(job.scheduledTime)
    end = to_minutes(job.scheduledEnd) if job.scheduledEnd else start + DEFAULT_EXISTING_JOB_MINUTES
    if end <= start:
        end += 24 * 60
    return start, end


def slot_is_free(
    start: int, duration: int, busy: Sequence[tuple[int, int]], day_start: int, day_end: int
) -> bool:
    end = start + duration
    if start < day_start or end > day_end:
        return False
    return all(end <= busy_start or start >= busy_end for busy_start, busy_end in busy)


def earliest_free_slot(
    duration: int, busy: Sequence[tuple[int, int]], day_start: int, day_end: int
) -> Optional[int]:
    start = day_start
    while start + duration <= day_end:
        if slot_is_free(start, duration, busy, day_start, day_end):
            return start
        start += SLOT_STEP_MINUTES
    return None


@dataclass(frozen=True)
class _Candidate:
    technician: TechnicianCandidate
    date: str
    start: int
    distance: Optional[float]
    home_distance: Optional[float]
    home_is_driving: bool
    cluster_job: Optional[ScheduledJob]
    cluster_distance: Optional[float]
    cluster_position: Optional[str]  # "after" / "before"
    skill_level: Optional[str]
    nearby_jobs: int


def _home_distance(job: JobToSchedule, technician: TechnicianCandidate) -> tuple[Optional[float], bool]:
    if technician.drivingDistanceMiles is not None:
        return technician.drivingDistanceMiles, True
    if None in (job.lat, job.lng, technician.homeLat, technician.homeLng):
        return None, False
    return haversine_miles(job.lat, job.lng, technician.homeLat, technician.homeLng), False


def _distance_to(job: JobToSchedule, other: ScheduledJob) -> Optional[float]:
    if None in (job.lat, job.lng, other.lat, other.lng):
        return None
    return haversine_miles(job.lat, job.lng, other.lat, other.lng)


def _confidence(candidate: _Candidate) -> Confidence:
    match = skill_match_for(candidate.skill_level)
    if match == SkillMatch.AVOID:
        return Confidence.LOW
    if candidate.cluster_position and candidate.cluster_distance is not None:
        if candidate.cluster_distance <= HIGH_CLUSTER_MILES:
            return Confidence.HIGH
    distance = candidate.distance
    if distance is None:
        return Confidence.LOW
    if match == SkillMatch.PREFERRED and distance <= HIGH_PREFERRED_MILES:
        return Confidence.HIGH
    if distance <= MEDIUM_MILES:
        return Confidence.MEDIUM
    return Confidence.LOW


def _reasoning(job: JobToSchedule, candidate: _Candidate, zone_name: Optional[str]) -> str:
    name = candidate.technician.name
    parts = []

    if candidate.cluster_position and candidate.cluster_job is not None:
        other = candidate.cluster_job
        place = other.city or "nearby"
        parts.append(
            f"Right {candidate.cluster_position} the {place} job at {other.scheduledTime} "
            f"({candidate.cluster_distance:.1f} mi away)"
        )
    else:
        parts.append(f"Earliest open slot in {name}'s working hours")

    if candidate.distance is None:
        parts.append("travel distance unknown (missing coordinates)")
    elif candidate.home_distance is not None and candidate.distance == candidate.home_distance:
        kind = "driving" if candidate.home_is_driving else "straight-line"
        parts.append(f"{candidate.distance:.1f} mi {kind} from {name}'s home")
    else:
        parts.append(f"{candidate.distance:.1f} mi from {name}'s closest job that day")

    phrase = SKILL_PHRASES.get(candidate.skill_level or "")
    if phrase:
        parts.append(f"{name} {phrase} {job.serviceType} jobs")

    if candidate.nearby_jobs:
        parts.append(f"{candidate.nearby_jobs} other jobs within {NEARBY_RADIUS_MILES} mi that day")

    if zone_name:
        parts.append(f"in the {zone_name} zone")

    return "; ".join(parts) + "."


def _candidate_for(
    job: JobToSchedule,
    technician: TechnicianCandidate,
    date: str,
    day_jobs: Sequence[ScheduledJob],
) -> Optional[_Candidate]:
    own_jobs = [
        j for j in day_jobs if technician.hcpEmployeeId and j.technicianId == technician.hcpEmployeeId
    ]
    busy = [interval for interval in (job_interval(j) for j in own_jobs) if interval]

    day_start = to_minutes(technician.workStart)
    day_end = to_minutes(technician.workEnd)
    if job.preferredTimeStart:
        day_start = max(day_start, to_minutes(job.preferredTimeStart))
    if job.preferredTimeEnd:
        day_end = min(day_end, to_minutes(job.preferredTimeEnd))

    home_distance, home_is_driving = _home_distance(job, technician)

    closest: Optional[ScheduledJob] = None
    closest_distance: Optional[float] = None
    for other in own_jobs:
        distance = _distance_to(job, other)
        if distance is not None and (closest_distance is None or distance < closest_distance):
            closest, closest_distance = other, distance

    start = None
    position = None
    if closest is not None and closest_distance <= CLUSTER_RADIUS_MILES:
        interval = job_interval(closest)
        if interval:
            after, before = interval[1], interval[0] - job.durationMinutes
            if slot_is_free(after, job.durationMinutes, busy, day_start, day_end):
                start, position = after, "after"
            elif slot_is_free(before, job.durationMinutes, busy, day_start, day_end):
                start, position = before, "before"

    if start is None:
        start = earliest_free_slot(job.durationMinutes, busy, day_start, day_end)
        if start is None:
            return None

    known = [d for d in (home_distance, closest_distance) if d is not None]
    nearby_distances = [_distance_to(job, j) for j in day_jobs]
    nearby = [d for d in nearby_distances if d is not None and d <= NEARBY_RADIUS_MILES]

    return _Candidate(
        technician=technician,
        date=date,
        start=start,
        distance=min(known) if known else None,
        home_distance=home_distance,
        home_is_driving=home_is_driving,
        cluster_job=closest if position else None,
        cluster_distance=closest_distance if position else None,
        cluster_position=position,
        skill_level=technician.skills.get(normalize_service_type(job.serviceType)),
        nearby_jobs=len(nearby),
    )


def suggest_assignments(
    job: JobToSchedule,
    technicians: Sequence[TechnicianCandidate],
    existing_jobs: Sequence[ScheduledJob],
    zones: Sequence[ServiceZone] = (),
    limit: int = 5,
) -> list[Suggestion]:
    """
    Rank technician/date/time candidates for a job.

    Ordering: confidence (high first), then estimated travel distance
    (unknown last), then technician name. A technician with no free slot on a
    date yields no candidate for that date.
    """
    zone_name = find_zone(job.lat, job.lng, zones)

    jobs_by_date: dict[str, list[ScheduledJob]] = {}
    for existing in existing_jobs:
        if job.remoteJobId and existing.remoteJobId == job.remoteJobId:
            continue  # The job being scheduled does not block itself
        jobs_by_date.setdefault(existing.scheduledDate, []).append(existing)

    ranked = []
    for date in dict.fromkeys(job.candidateDates):
        day_jobs = jobs_by_date.get(date, [])
        for technician in technicians:
            candidate = _candidate_for(job, technician, date, day_jobs)
            if candidate is None:
                continue
            confidence = _confidence(candidate)
            sort_key = (
                CONFIDENCE_RANK[confidence],
                candidate.distance if candidate.distance is not None else math.inf,
                technician.name.lower(),
                date,
                candidate.start,
            )
            ranked.append((sort_key, confidence, candidate))

    ranked.sort(key=lambda entry: entry[0])

    suggestions = []
    for _, confidence, candidate in ranked[:limit]:
        technician = candidate.technician
        suggestions.append(
            Suggestion(
                id=f"{candidate.date}:{technician.id}",
                remoteJobId=job.remoteJobId,
                serviceType=job.serviceType,
                customerName=job.customerName,
                customerPhone=job.customerPhone,
                customerEmail=job.customerEmail,
                address=job.address,
                city=job.city,
                state=job.state,
                zip=job.zip,
                lat=job.lat,
                lng=job.lng,
                technicianId=technician.hcpEmployeeId,
                technicianName=technician.name,
                scheduledDate=candidate.date,
                scheduledTime=from_minutes(candidate.start),
                durationMinutes=job.durationMinutes,
                confidence=confidence,
                skillMatch=skill_match_for(candidate.skill_level),
                reasoning=_reasoning(job, candidate, zone_name),
                nearbyJobsCount=candidate.nearby_jobs,
                estimatedDistanceMiles=(
                    round(candidate.distance, 1) if candidate.distance is not None else None
                ),
                notes=job.notes,
            )
        )
    return suggestions
