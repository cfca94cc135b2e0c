from typing import Optional
from fastapi import APIRouter, Depends, Query, Path
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from schoollink.database import get_db
from schoollink.schemas.report_cards import ReportCardData
from schoollink.models.users import User
from schoollink.middleware.authentication import get_current_user
from schoollink.services.report_cards import assemble_report_card
from schoollink.services.report_renderer import render_report_card_pdf

router = APIRouter()

@router.get("/report-cards/student/{student_id}/academic-year/{academic_year_id}", response_model=ReportCardData)
async def get_report_card(
    student_id: int = Path(..., gt=0),
    academic_year_id: int = Path(..., gt=0),
    school_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Get a student's report card data for an academic year.
    """
    return await assemble_report_card(
        db,
        current_user,
        student_id=student_id,
        academic_year_id=academic_year_id,
        school_id=school_id,
    )

@router.get("/report-cards/student/{student_id}/academic-year/{academic_year_id}/pdf")
async def download_report_card_pdf(
    student_id: int = Path(..., gt=0),
    academic_year_id: int = Path(..., gt=0),
    school_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Download a student's report card as a PDF.
    """
    report = await assemble_report_card(
        db,
        current_user,
        student_id=student_id,
        academic_year_id=academic_year_id,
        school_id=school_id,
    )
    pdf_bytes = render_report_card_pdf(report)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="report-card-{report.student.student_number}.pdf"'},
    )
