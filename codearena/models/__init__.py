"""Database models"""

from codearena.models.user import User
from codearena.models.contest import Contest, ContestParticipant
from codearena.models.problem import Problem, TestCase
from codearena.models.submission import Submission, SubmissionState, TestResult

__all__ = [
    "User",
    "Contest",
    "ContestParticipant",
    "Problem",
    "TestCase",
    "Submission",
    "SubmissionState",
    "TestResult",
]
