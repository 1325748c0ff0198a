"""
Scheduling Domain

Technician/time suggestions for HouseCall Pro jobs and their review lifecycle.

- engine.py: pure ranking of (technician, date, time) candidates
- geo.py: haversine distance and service zone lookup
- service.py: loads inputs from the database, adds Mapbox driving distances
- lifecycle.py: suggestion state machine and hand-off to the job orchestrator
- sessions.py: in-memory review sessions
- router.py: /scheduling endpoints
"""
