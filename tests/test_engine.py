import pytest

from app.domain.scheduling.engine import (
    earliest_free_slot,
    normalize_service_type,
    skill_match_for,
    suggest_assignments,
)
from app.domain.scheduling.geo import haversine_miles, point_in_polygon
from app.domain.scheduling.schemas import (
    Confidence,
    JobToSchedule,
    ScheduledJob,
    ServiceZone,
    SkillMatch,
    TechnicianCandidate,
)

DATE = "2024-06-03"


def _job(**overrides) -> JobToSchedule:
    fields = dict(
        serviceType="Carpet Cleaning",
        customerName="Pat Doe",
        lat=40.0,
        lng=-75.0,
        durationMinutes=60,
        candidateDates=(DATE,),
    )
    fields.update(overrides)
    return JobToSchedule(**fields)


def _tech(name, lat, skills=None, **overrides) -> TechnicianCandidate:
    fields = dict(
        id=f"tech-{name.lower()}",
        name=name,
        hcpEmployeeId=f"emp_{name.lower()}",
        homeLat=lat,
        homeLng=-75.0,
        skills=skills or {},
    )
    fields.update(overrides)
    return TechnicianCandidate(**fields)


def test_ordering_confidence_then_distance_then_name():
    technicians = [
        _tech("Dana", 41.0),
        _tech("Carl", 40.05),
        _tech("Alice", 40.2, {"carpet_cleaning": "preferred"}),
        _tech("Bob", 40.05),
    ]

    suggestions = suggest_assignments(_job(), technicians, [])

    assert [s.technicianName for s in suggestions] == ["Alice", "Bob", "Carl", "Dana"]
    assert [s.confidence for s in suggestions] == [
        Confidence.HIGH,
        Confidence.MEDIUM,
        Confidence.MEDIUM,
        Confidence.LOW,
    ]
    assert all(s.scheduledTime == "08:00" for s in suggestions)


def test_every_suggestion_has_reasoning():
    technicians = [_tech("Ann", 40.1), _tech("Ben", None, homeLng=None)]

    suggestions = suggest_assignments(_job(), technicians, [])

    assert len(suggestions) == 2
    assert all(s.reasoning.strip() for s in suggestions)
    unknown = next(s for s in suggestions if s.technicianName == "Ben")
    assert unknown.estimatedDistanceMiles is None
    assert unknown.confidence == Confidence.LOW


@pytest.mark.parametrize(
    "level,expected",
    [
        ("preferred", SkillMatch.PREFERRED),
        ("avoid", SkillMatch.AVOID),
        ("never", SkillMatch.AVOID),
        ("standard", SkillMatch.NONE),
        (None, SkillMatch.NONE),
    ],
)
def test_skill_match_levels(level, expected):
    assert skill_match_for(level) == expected


def test_skill_is_looked_up_by_normalized_service_type():
    technicians = [_tech("Gus", 40.05, {"tile_grout_cleaning": "never"})]

    suggestion = suggest_assignments(_job(serviceType="Tile & Grout Cleaning"), technicians, [])[0]

    assert suggestion.skillMatch == SkillMatch.AVOID
    assert suggestion.confidence == Confidence.LOW
    assert "Tile & Grout Cleaning" in suggestion.reasoning


def test_normalize_service_type():
    assert normalize_service_type("Tile & Grout Cleaning") == "tile_grout_cleaning"
    assert normalize_service_type(" Carpet Cleaning ") == "carpet_cleaning"


def test_clusters_right_after_nearby_job():
    existing = [
        ScheduledJob(
            remoteJobId="job_a",
            scheduledDate=DATE,
            scheduledTime="09:00",
            scheduledEnd="11:00",
            technicianId="emp_far",
            city="Media",
            lat=40.02,
            lng=-75.0,
        )
    ]
    technicians = [_tech("Far", 40.6)]

    suggestion = suggest_assignments(_job(), technicians, existing)[0]

    assert suggestion.scheduledTime == "11:00"
    assert suggestion.confidence == Confidence.HIGH
    assert "Right after the Media job at 09:00" in suggestion.reasoning
    assert suggestion.estimatedDistanceMiles == pytest.approx(1.4, abs=0.1)
    assert suggestion.nearbyJobsCount == 1


def test_clusters_before_when_after_is_outside_working_hours():
    existing = [
        ScheduledJob(
            remoteJobId="job_a",
            scheduledDate=DATE,
            scheduledTime="16:00",
            scheduledEnd="17:00",
            technicianId="emp_eve",
            lat=40.01,
            lng=-75.0,
        )
    ]

    suggestion = suggest_assignments(_job(), [_tech("Eve", 40.5)], existing)[0]

    assert suggestion.scheduledTime == "15:00"
    assert "Right before" in suggestion.reasoning


def test_technician_without_free_slot_is_skipped():
    existing = [
        ScheduledJob(
            remoteJobId="job_all_day",
            scheduledDate=DATE,
            scheduledTime="08:00",
            scheduledEnd="17:00",
            technicianId="emp_busy",
        )
    ]
    technicians = [_tech("Busy", 40.01), _tech("Free", 40.3)]

    suggestions = suggest_assignments(_job(), technicians, existing)

    assert [s.technicianName for s in suggestions] == ["Free"]


def test_job_being_rescheduled_does_not_block_itself():
    existing = [
        ScheduledJob(
            remoteJobId="job_1",
            scheduledDate=DATE,
            scheduledTime="08:00",
            scheduledEnd="17:00",
            technicianId="emp_solo",
        )
    ]

    suggestions = suggest_assignments(_job(remoteJobId="job_1"), [_tech("Solo", 40.05)], existing)

    assert suggestions[0].scheduledTime == "08:00"
    assert suggestions[0].remoteJobId == "job_1"


def test_preferred_window_limits_start_time():
    suggestion = suggest_assignments(
        _job(preferredTimeStart="13:00", preferredTimeEnd="16:00"), [_tech("Ann", 40.05)], []
    )[0]
    assert suggestion.scheduledTime == "13:00"


def test_driving_distance_overrides_straight_line():
    technicians = [_tech("Ann", 40.05, drivingDistanceMiles=30.0)]

    suggestion = suggest_assignments(_job(), technicians, [])[0]

    assert suggestion.estimatedDistanceMiles == 30.0
    assert suggestion.confidence == Confidence.LOW
    assert "driving" in suggestion.reasoning


def test_zone_is_mentioned_in_reasoning():
    zone = ServiceZone(
        name="Main Line",
        ring=((-75.1, 39.9), (-74.9, 39.9), (-74.9, 40.1), (-75.1, 40.1), (-75.1, 39.9)),
    )

    suggestion = suggest_assignments(_job(), [_tech("Ann", 40.05)], [], zones=[zone])[0]

    assert "Main Line zone" in suggestion.reasoning


def test_one_candidate_per_technician_and_date_with_limit():
    job = _job(candidateDates=("2024-06-03", "2024-06-04", "2024-06-05"))
    technicians = [_tech("Ann", 40.05), _tech("Ben", 40.1)]

    suggestions = suggest_assignments(job, technicians, [], limit=5)

    assert len(suggestions) == 5
    assert len({s.id for s in suggestions}) == 5


def test_inputs_are_not_mutated():
    job = _job()
    technicians = [_tech("Ann", 40.05)]
    existing = [ScheduledJob(remoteJobId="job_a", scheduledDate=DATE, scheduledTime="09:00", technicianId="emp_ann")]
    before = (job.model_dump(), [t.model_dump() for t in technicians], [e.model_dump() for e in existing])

    suggest_assignments(job, technicians, existing)

    assert before == (job.model_dump(), [t.model_dump() for t in technicians], [e.model_dump() for e in existing])


def test_earliest_free_slot_steps_past_busy_time():
    assert earliest_free_slot(60, [(480, 570)], 480, 1020) == 570
    assert earliest_free_slot(60, [(480, 1020)], 480, 1020) is None


def test_geo_helpers():
    assert haversine_miles(40.0, -75.0, 41.0, -75.0) == pytest.approx(69.1, abs=0.1)
    square = [(0, 0), (10, 0), (10, 10), (0, 10), (0, 0)]
    assert point_in_polygon(5, 5, square) is True
    assert point_in_polygon(15, 5, square) is False
