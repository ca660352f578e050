# Backend main entry point - patient duplicate search and merge API
import os
import logging
from datetime import date, datetime, timezone
from dotenv import load_dotenv
load_dotenv()  # Load .env so DEMO_MODE / LOG_LEVEL work for local runs
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from typing import Optional, List, Dict

import store
from audit import DEFAULT_HISTORY_LIMIT, audit_entry_to_dict, list_audit_log_entries, reset_audit_log
from duplicates import find_duplicate_groups
from errors import InvalidMergeRequest, InvalidSearchQuery, MergeWriteFailure, SearchFailure
from history import export_csv, export_filename, export_pdf, filter_by_date_range, performer_name, summarize
from merge import SessionContext, merge_duplicate_group
from models import DuplicateGroup, Episode, PatientIdentity, identity_key, profiles
from seed import seed_data

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("patient_merge")

# Initialize seed data
seed_data()

app = FastAPI(title="Patient Duplicate Merge API")

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


def _is_demo_mode() -> bool:
    """True only when DEMO_MODE env var is explicitly 'true' (case-insensitive)."""
    return os.environ.get("DEMO_MODE", "").lower() == "true"


def _history_limit() -> int:
    raw = os.environ.get("MERGE_HISTORY_LIMIT", "")
    try:
        limit = int(raw)
    except ValueError:
        if raw:
            logger.warning("Ignoring invalid MERGE_HISTORY_LIMIT=%r", raw)
        return DEFAULT_HISTORY_LIMIT
    return limit if limit > 0 else DEFAULT_HISTORY_LIMIT

# Configure CORS - allow local dev and deployed frontend
_allowed_origins = [
    "http://localhost:5173",
    "http://localhost:5174",
]
_frontend_url = os.environ.get("FRONTEND_URL", "")
if _frontend_url:
    _allowed_origins.append(_frontend_url)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request/Response models
class EpisodeSummary(BaseModel):
    episodeId: str
    region: str
    diagnosis: str
    dateOfService: str
    insurance: Optional[str] = None
    emergencyContact: Optional[str] = None
    emergencyPhone: Optional[str] = None
    referringPhysician: Optional[str] = None
    medications: Optional[str] = None
    medicalHistory: Optional[str] = None

class PatientIdentityResponse(BaseModel):
    patientName: str
    dateOfBirth: str
    episodeCount: int
    episodes: List[EpisodeSummary]

class DuplicateGroupResponse(BaseModel):
    members: List[PatientIdentityResponse]
    totalEpisodes: int

class DuplicateSearchResponse(BaseModel):
    groups: List[DuplicateGroupResponse]
    totalRecords: int
    message: str

class MergeMember(BaseModel):
    patientName: str = Field(min_length=1)
    dateOfBirth: str = Field(pattern=DATE_PATTERN)  # YYYY-MM-DD
    episodeIds: List[str]

class PrimaryPatient(BaseModel):
    patientName: str = Field(min_length=1)
    dateOfBirth: str = Field(pattern=DATE_PATTERN)

class MergeRequest(BaseModel):
    group: List[MergeMember]
    primary: PrimaryPatient

class MergeResponse(BaseModel):
    status: str
    message: str
    primaryPatient: PrimaryPatient
    episodeIdsUpdated: List[str]
    totalEpisodes: int
    auditLogId: Optional[str] = None


def get_session_context(
    x_user_id: Optional[str] = Header(None),
    user_agent: Optional[str] = Header(None),
) -> SessionContext:
    """Resolve acting user and clinic scope from the authenticated session headers."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="User not authenticated")
    profile = store.get_profile(x_user_id)
    if not profile:
        raise HTTPException(status_code=401, detail="User not authenticated")
    return SessionContext(user_id=profile.userId, clinic_id=profile.clinicId, user_agent=user_agent)


def _episode_summary(ep: Episode) -> EpisodeSummary:
    return EpisodeSummary(
        episodeId=ep.episodeId,
        region=ep.region,
        diagnosis=ep.diagnosis or "",
        dateOfService=ep.dateOfService,
        insurance=ep.insurance,
        emergencyContact=ep.emergencyContact,
        emergencyPhone=ep.emergencyPhone,
        referringPhysician=ep.referringPhysician,
        medications=ep.medications,
        medicalHistory=ep.medicalHistory,
    )


def _group_response(group: DuplicateGroup) -> DuplicateGroupResponse:
    return DuplicateGroupResponse(
        members=[
            PatientIdentityResponse(
                patientName=member.patientName,
                dateOfBirth=member.dateOfBirth,
                episodeCount=member.episodeCount,
                episodes=[_episode_summary(ep) for ep in member.episodes],
            )
            for member in group.members
        ],
        totalEpisodes=group.totalEpisodes,
    )


def _group_from_request(request: MergeRequest, clinic_id: Optional[str]) -> DuplicateGroup:
    """
    Rebuild the duplicate group the client selected from, resolving episode ids.
    Every cited episode must still carry its member's name and DOB; a group
    gone stale since the search is rejected rather than merged.
    """
    members: List[PatientIdentity] = []
    seen = set()
    for member in request.group:
        key = identity_key(member.patientName, member.dateOfBirth)
        if key in seen:
            raise HTTPException(status_code=400, detail=f"Duplicate group member: {member.patientName}")
        seen.add(key)

        identity = PatientIdentity(patientName=member.patientName, dateOfBirth=member.dateOfBirth)
        for episode_id in member.episodeIds:
            ep = store.get_episode(episode_id)
            if ep is None or (clinic_id is not None and ep.clinicId != clinic_id):
                raise HTTPException(status_code=400, detail=f"Unknown episode: {episode_id}")
            if identity_key(ep.patientName, ep.dateOfBirth) != key:
                raise HTTPException(
                    status_code=400,
                    detail=f"Episode {episode_id} does not belong to {member.patientName}",
                )
            identity.episodes.append(ep)
        members.append(identity)
    return DuplicateGroup(members=members)


@app.get("/")
def read_root():
    return {"message": "Patient Duplicate Merge API"}

@app.get("/health")
def health_check():
    return {"status": "healthy"}


@app.get("/patients/duplicates", response_model=DuplicateSearchResponse)
def search_duplicates(q: str = "", context: SessionContext = Depends(get_session_context)):
    """Find groups of patient identities with similar names and the same date of birth."""
    try:
        groups = find_duplicate_groups(q, clinic_id=context.clinic_id)
    except InvalidSearchQuery as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except SearchFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc))

    total_records = sum(len(g.members) for g in groups)
    if not groups:
        message = "No potential duplicate patients found"
    else:
        message = f"Found {total_records} potential duplicate records"
    return DuplicateSearchResponse(
        groups=[_group_response(g) for g in groups],
        totalRecords=total_records,
        message=message,
    )


@app.post("/patients/merge", response_model=MergeResponse)
def merge_patients(request: MergeRequest, context: SessionContext = Depends(get_session_context)):
    """
    Consolidate every episode in the group onto the primary patient's name and DOB.
    Cannot be undone. The audit entry is best-effort and never blocks the merge.
    """
    group = _group_from_request(request, context.clinic_id)
    try:
        result = merge_duplicate_group(
            group,
            request.primary.patientName,
            request.primary.dateOfBirth,
            context,
        )
    except InvalidMergeRequest as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except MergeWriteFailure as exc:
        raise HTTPException(status_code=502, detail=str(exc))

    return MergeResponse(
        status="merged",
        message=(
            f"Successfully merged {len(result.episodeIdsUpdated)} episodes "
            f"into {result.primary.patientName}'s record"
        ),
        primaryPatient=PrimaryPatient(
            patientName=result.primary.patientName,
            dateOfBirth=result.primary.dateOfBirth,
        ),
        episodeIdsUpdated=result.episodeIdsUpdated,
        totalEpisodes=result.totalEpisodes,
        auditLogId=result.auditEntry.id if result.auditEntry else None,
    )


@app.get("/patients/merge-history")
def get_merge_history(
    dateFrom: Optional[date] = None,
    dateTo: Optional[date] = None,
    limit: Optional[int] = Query(None, ge=1, le=500),
    context: SessionContext = Depends(get_session_context),
):
    """Recent patient merges for the caller's clinic, newest first."""
    entries = list_audit_log_entries(limit=limit or _history_limit(), clinic_id=context.clinic_id)
    entries = filter_by_date_range(entries, dateFrom, dateTo)
    performers: Dict[str, str] = {e.userId: performer_name(e, profiles) for e in entries}
    return {
        "entries": [audit_entry_to_dict(e) for e in entries],
        "performers": performers,
        "summary": summarize(entries),
    }


@app.get("/patients/merge-history/export")
def export_merge_history(
    dateFrom: Optional[date] = None,
    dateTo: Optional[date] = None,
    format: str = Query("csv", pattern="^(csv|pdf)$"),
    context: SessionContext = Depends(get_session_context),
):
    """Download the (filtered) merge history as CSV or as a PDF audit report."""
    entries = list_audit_log_entries(limit=_history_limit(), clinic_id=context.clinic_id)
    entries = filter_by_date_range(entries, dateFrom, dateTo)
    if not entries:
        raise HTTPException(status_code=404, detail="No merge history to export")

    now = datetime.now(timezone.utc)
    filename = export_filename(dateFrom, dateTo, now.date(), extension=format)
    if format == "pdf":
        content = export_pdf(entries, profiles, dateFrom, dateTo, generated_at=now)
        media_type = "application/pdf"
    else:
        content = export_csv(entries, profiles)
        media_type = "text/csv; charset=utf-8"
    logger.info("Exported %d merge history entries as %s", len(entries), format)
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/demo/status")
def demo_status():
    """Returns whether demo mode is enabled. Only for frontend visibility gate."""
    return {"demoMode": _is_demo_mode()}


@app.post("/demo/reset")
def demo_reset():
    """
    Reset prototype to baseline. Only available when DEMO_MODE=true.
    Restores seed episodes and profiles, clears the audit log.
    """
    if not _is_demo_mode():
        raise HTTPException(status_code=404, detail="Demo reset not available")
    seed_data()
    reset_audit_log()
    logger.info("Demo data reset")
    return {"status": "ok"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
