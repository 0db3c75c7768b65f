"""
LabCal — calibration compliance core for laboratory equipment.

Modules:
- criteria:   versioned acceptance criteria per equipment class
- validation: pure measurement checks (linearity, repeatability, accuracy, environment)
- scoring:    weighted compliance score and verdict
- advisory:   optional Biomni advisory opinion, bounded by timeout and leniency cap
- sessions:   calibration session state machine and per-equipment registry
- api:        FastAPI routes
"""

__version__ = "1.0.0"
