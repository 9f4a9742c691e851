"""Excel export service - contest standings reports"""

from datetime import datetime
from pathlib import Path
import logging

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.worksheet.worksheet import Worksheet
from sqlalchemy import case, func
from sqlalchemy.orm import Session

from codearena.models.contest import Contest
from codearena.models.problem import Problem
from codearena.models.submission import Submission, SubmissionState
from codearena.models.user import User
from codearena.services.catalog import catalog
from codearena.services.contest_service import contest_service
from codearena.services.leaderboard import LeaderboardService

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class ExcelService:
    """Service for generating Excel reports"""

    @staticmethod
    def generate_contest_report(
        db: Session,
        leaderboard: LeaderboardService,
        contest_id: int,
        exports_dir: str,
    ) -> str:
        """
        Write a standings workbook for one contest.

        Returns:
            Path to generated Excel file
        """
        contest = catalog.get_contest(db, contest_id)

        wb = Workbook()
        wb.remove(wb.active)
        ExcelService._create_standings_sheet(wb, db, leaderboard, contest)
        ExcelService._create_submissions_sheet(wb, db, contest)
        ExcelService._create_statistics_sheet(wb, db, contest)

        target_dir = Path(exports_dir) / "contests"
        target_dir.mkdir(parents=True, exist_ok=True)
        filepath = target_dir / f"contest_{contest.id}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.xlsx"

        wb.save(filepath)
        logger.info(f"Generated contest report: {filepath}")
        return str(filepath)

    @staticmethod
    def _style_header(ws: Worksheet, color: str) -> None:
        fill = PatternFill(start_color=color, end_color=color, fill_type="solid")
        font = Font(bold=True, color="FFFFFF")
        for cell in ws[1]:
            cell.fill = fill
            cell.font = font
            cell.alignment = Alignment(horizontal="center", vertical="center")

    @staticmethod
    def _fit_columns(ws: Worksheet) -> None:
        for column in ws.columns:
            longest = max((len(str(cell.value)) for cell in column if cell.value is not None), default=0)
            ws.column_dimensions[column[0].column_letter].width = min(longest + 2, 50)

    @staticmethod
    def _create_standings_sheet(wb: Workbook, db: Session, leaderboard: LeaderboardService, contest: Contest):
        ws = wb.create_sheet("Leaderboard")
        ws.append(["Rank", "Username", "Score", "Problems Solved", "Joined At"])
        ExcelService._style_header(ws, "4472C4")

        entries, _ = contest_service.leaderboard_page(db, leaderboard, contest.id, limit=None)
        for entry in entries:
            ws.append([
                entry["rank"],
                entry["username"],
                entry["score"],
                entry["problems_solved"],
                entry["joined_at"].strftime("%Y-%m-%d %H:%M:%S"),
            ])
        ExcelService._fit_columns(ws)

    @staticmethod
    def _create_submissions_sheet(wb: Workbook, db: Session, contest: Contest):
        ws = wb.create_sheet("Submissions")
        ws.append([
            "Submission ID", "Username", "Problem", "Language", "State",
            "Score", "Passed", "Execution Time (ms)", "Submitted At", "Decided At",
        ])
        ExcelService._style_header(ws, "70AD47")

        rows = (
            db.query(Submission, User.username, Problem.title)
            .join(User, User.id == Submission.user_id)
            .join(Problem, Problem.id == Submission.problem_id)
            .filter(Submission.contest_id == contest.id)
            .order_by(Submission.submitted_at.asc(), Submission.id.asc())
            .all()
        )
        for sub, username, title in rows:
            ws.append([
                sub.id,
                username,
                title,
                sub.language,
                sub.state,
                sub.score,
                f"{sub.passed_count}/{sub.total_count}",
                sub.execution_time_ms,
                sub.submitted_at.strftime("%Y-%m-%d %H:%M:%S") if sub.submitted_at else "",
                sub.decided_at.strftime("%Y-%m-%d %H:%M:%S") if sub.decided_at else "",
            ])
        ExcelService._fit_columns(ws)

    @staticmethod
    def _create_statistics_sheet(wb: Workbook, db: Session, contest: Contest):
        ws = wb.create_sheet("Statistics")
        ws.append([f"{contest.title} - Contest Statistics"])
        ws["A1"].font = Font(bold=True, size=14)
        ws.append([])

        ws.append(["Problem", "Submissions", "Accepted", "Avg Score", "Max Score"])
        for cell in ws[3]:
            cell.font = Font(bold=True)

        accepted = SubmissionState.ACCEPTED.value
        stats = {
            problem_id: (count, solved, avg_score)
            for problem_id, count, solved, avg_score in (
                db.query(
                    Submission.problem_id,
                    func.count(Submission.id),
                    func.sum(case((Submission.state == accepted, 1), else_=0)),
                    func.avg(Submission.score),
                )
                .filter(Submission.contest_id == contest.id)
                .group_by(Submission.problem_id)
                .all()
            )
        }
        for problem in contest.problems:
            count, solved, avg_score = stats.get(problem.id, (0, 0, 0))
            ws.append([problem.title, count, int(solved or 0), round(float(avg_score or 0), 2), problem.max_score])
        ExcelService._fit_columns(ws)


# Singleton instance
excel_service = ExcelService()
