# ============================================================================
# ENGINE
# ============================================================================
# STATUS: Core - Pure job/step logic
# PURPOSE: Status derivation and progress inference
# CREATED: 18 OCT 2026
# ============================================================================
"""
Engine Components

- aggregate: job status derivation, transitions, progress, next-step inference
"""

from engine.aggregate import (
    derive_job_status,
    JobTransition,
    evaluate_job_transition,
    apply_job_transition,
    finalize_job,
    compute_progress,
    infer_current_step,
)

__all__ = [
    "derive_job_status",
    "JobTransition",
    "evaluate_job_transition",
    "apply_job_transition",
    "finalize_job",
    "compute_progress",
    "infer_current_step",
]
