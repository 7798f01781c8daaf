"""
Rota engine: schedule resolution and coverage for a hospital department.

Pure-Python core used by the web backend and the CLI:
  cycle       on-call rotation math (date -> slot position -> clinician)
  compositor  layered precedence merge (manual > leave > on-call > job plan)
  detector    coverage needs raised by an absence, consultant cascade
  scoring     fairness ranking of substitute candidates
  validate    write-boundary interval checks, composed-schedule checks
"""

__version__ = "1.0.0"
