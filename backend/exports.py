import csv
import io
from datetime import datetime
from typing import Iterable, List

from fastapi.responses import StreamingResponse
from openpyxl import Workbook

from models import Team

EXPORT_HEADERS = [
    "Team ID", "Team Name", "Category", "Project Title", "Project Summary", "College Name",
    "Mentor Name", "Mentor Email", "Contact Phone", "Contact Email", "Member Count", "Status",
    "Verification Note", "Verified At", "Verified By", "Created At",
    "Member Index", "Member Name", "Member Email", "Member Year", "Member Department",
]


def _iso(value) -> str:
    return value.isoformat() if isinstance(value, datetime) else ""


def build_export_rows(teams: Iterable[Team]) -> List[list]:
    rows = []
    for team in teams:
        members = list(team.members)
        for index in range(team.member_count):
            member = members[index] if index < len(members) else None
            rows.append([
                team.id,
                team.team_name,
                team.category.value,
                team.project_title,
                team.project_summary,
                team.college_name,
                team.mentor_name or "",
                team.mentor_email or "",
                team.contact_phone,
                team.contact_email,
                team.member_count,
                team.status.value,
                team.verification_note or "",
                _iso(team.verified_at),
                team.verified_by or "",
                _iso(team.created_at),
                index + 1,
                member.full_name if member else "",
                member.email if member else "",
                member.year if member else "",
                member.department if member else "",
            ])
    return rows


def export_response(teams: Iterable[Team], format: str = "csv") -> StreamingResponse:
    stamp = datetime.now().strftime("%Y-%m-%d")
    rows = build_export_rows(teams)

    if format == "xlsx":
        wb = Workbook()
        ws = wb.active
        ws.title = "Teams"
        ws.append(EXPORT_HEADERS)
        for row in rows:
            ws.append(row)

        output = io.BytesIO()
        wb.save(output)
        output.seek(0)

        return StreamingResponse(
            output,
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers={"Content-Disposition": f"attachment; filename=innovate-x-teams-{stamp}.xlsx"}
        )

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(EXPORT_HEADERS)
    writer.writerows(rows)

    return StreamingResponse(
        iter([output.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=innovate-x-teams-{stamp}.csv"}
    )
