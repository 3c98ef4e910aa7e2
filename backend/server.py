from fastapi import FastAPI, APIRouter, UploadFile, File, HTTPException, Query, Depends, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from fastapi.responses import Response, StreamingResponse
from fastapi.middleware.gzip import GZipMiddleware
from starlette.middleware.cors import CORSMiddleware
from motor.motor_asyncio import AsyncIOMotorDatabase
import os
import io
import logging

# Setup logging early
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)
from typing import List, Optional, Dict, Any
import jwt

import analytics
import exports
from database import close_client, ensure_indexes, get_client, get_db
from errors import FormatError, ReferentialGap
from ingest import import_text, preview_text
from store import TenantStore

MAX_UPLOAD_MB = int(os.environ.get("MAX_UPLOAD_MB", "5"))
CSV_DELIMITER = os.environ.get("CSV_DELIMITER", ",")
PREVIEW_ROWS = 5

security = HTTPBearer(auto_error=False)


def get_database() -> AsyncIOMotorDatabase:
    return get_db()


async def get_current_tenant(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> str:
    """The bearer token's ``sub`` claim is the tenant every query is scoped to."""
    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")
    secret = os.environ.get("JWT_SECRET")
    if not secret:
        raise HTTPException(status_code=500, detail="JWT secret not configured")
    try:
        payload = jwt.decode(credentials.credentials, secret, algorithms=["HS256"])
    except jwt.PyJWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    tenant_id = payload.get("sub")
    if not tenant_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return str(tenant_id)


def get_store(
    tenant_id: str = Depends(get_current_tenant),
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> TenantStore:
    return TenantStore(db, tenant_id)


app = FastAPI(title="Assessment Insights API")
api_router = APIRouter(prefix="/api", dependencies=[Depends(get_current_tenant)])


@app.get("/health")
async def health_check():
    return {"status": "ok"}


async def read_upload(file: UploadFile) -> str:
    if not file.filename:
        raise HTTPException(status_code=400, detail="No file provided")
    content = await file.read()
    if len(content) > MAX_UPLOAD_MB * 1024 * 1024:
        raise HTTPException(status_code=413, detail=f"File exceeds {MAX_UPLOAD_MB} MB")
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="CSV must be UTF-8 encoded")


def download(content: bytes, filename: str, media_type: str) -> StreamingResponse:
    headers = {"Content-Disposition": f"attachment; filename={filename}"}
    return StreamingResponse(io.BytesIO(content), media_type=media_type, headers=headers)


def export_table(rows: List[Dict[str, Any]], name: str, sheet_name: str, format: str) -> StreamingResponse:
    if format not in ("csv", "excel"):
        raise HTTPException(status_code=400, detail=f"Unsupported export format: {format}")
    if format == "excel":
        return download(exports.rows_to_excel(rows, sheet_name), f"{name}.xlsx", exports.EXCEL_MEDIA_TYPE)
    return download(exports.rows_to_csv(rows), f"{name}.csv", exports.CSV_MEDIA_TYPE)


@api_router.post("/import/preview")
async def import_preview(file: UploadFile = File(...)):
    text = await read_upload(file)
    try:
        headers, report = preview_text(text, CSV_DELIMITER)
    except FormatError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {
        "filename": file.filename,
        "headers": headers,
        "valid_count": len(report.valid),
        "invalid_count": len(report.invalid),
        "preview": [row.model_dump() for row in report.valid[:PREVIEW_ROWS]],
        "invalid": [row.model_dump() for row in report.invalid],
    }


@api_router.post("/import/csv")
async def import_csv(file: UploadFile = File(...), store: TenantStore = Depends(get_store)):
    text = await read_upload(file)
    try:
        return await import_text(store, text, CSV_DELIMITER)
    except FormatError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@api_router.get("/import/template")
async def download_import_template():
    headers = {"Content-Disposition": "attachment; filename=assessment_template.csv"}
    return Response(content=exports.sample_csv(), media_type=exports.CSV_MEDIA_TYPE, headers=headers)


@api_router.get("/students")
async def get_students(store: TenantStore = Depends(get_store)):
    return [student.model_dump() for student in await store.list_students()]


@api_router.get("/students/{student_id}")
async def get_student_profile(student_id: str, store: TenantStore = Depends(get_store)):
    try:
        return await analytics.get_student_profile(store, student_id)
    except ReferentialGap:
        raise HTTPException(status_code=404, detail="Student not found")


@api_router.get("/tests")
async def get_tests(store: TenantStore = Depends(get_store)):
    return [test.model_dump() for test in await store.list_tests()]


@api_router.get("/results")
async def get_results(
    student_id: Optional[str] = Query(default=None),
    test_id: Optional[str] = Query(default=None),
    store: TenantStore = Depends(get_store),
):
    results = await store.list_results(student_id=student_id, test_id=test_id)
    return [result.model_dump() for result in results]


@api_router.get("/analytics/summary")
async def get_analytics_summary(store: TenantStore = Depends(get_store)):
    try:
        return await analytics.get_dashboard_summary(store)
    except Exception as e:
        logger.exception("Analytics summary failed")
        raise HTTPException(status_code=500, detail=f"Failed to load analytics summary: {str(e)}")


@api_router.get("/analytics/class-averages")
async def get_class_averages(store: TenantStore = Depends(get_store)):
    return await analytics.get_class_averages(store)


@api_router.get("/analytics/domains")
async def get_domain_weakness(store: TenantStore = Depends(get_store)):
    return await analytics.get_domain_weakness(store)


@api_router.get("/analytics/growth")
async def get_growth_metrics(store: TenantStore = Depends(get_store)):
    return await analytics.get_growth_metrics(store)


@api_router.get("/analytics/compare/class/{student_id}")
async def compare_student_with_class(student_id: str, store: TenantStore = Depends(get_store)):
    try:
        return await analytics.get_student_vs_class(store, student_id)
    except ReferentialGap:
        raise HTTPException(status_code=404, detail="Student not found")


@api_router.get("/analytics/compare/students")
async def compare_two_students(
    student_a: str = Query(...),
    student_b: str = Query(...),
    store: TenantStore = Depends(get_store),
):
    try:
        return await analytics.get_student_comparison(store, student_a, student_b)
    except ReferentialGap:
        raise HTTPException(status_code=404, detail="Student not found")


@api_router.get("/analytics/students/{student_id}/domains")
async def get_student_domain_trend(student_id: str, store: TenantStore = Depends(get_store)):
    try:
        return await analytics.get_domain_trend(store, student_id)
    except ReferentialGap:
        raise HTTPException(status_code=404, detail="Student not found")


@api_router.get("/analytics/summary/export")
async def export_class_summary(format: str = Query("csv"), store: TenantStore = Depends(get_store)):
    rows = exports.class_summary_rows(await analytics.get_class_averages(store))
    return export_table(rows, "class_summary", "Class Summary", format)


@api_router.get("/analytics/growth/export")
async def export_growth_report(format: str = Query("csv"), store: TenantStore = Depends(get_store)):
    rows = exports.growth_rows(await analytics.get_growth_metrics(store))
    return export_table(rows, "growth_report", "Growth Report", format)


@app.on_event("startup")
async def prepare_database():
    try:
        await get_client().admin.command('ping')
        logger.info("MongoDB connection successful")
    except Exception as e:
        logger.error(f"MongoDB connection failed: {e}")
        logger.error("Please check your MONGO_URL in .env file and ensure MongoDB is accessible")
        return
    try:
        await ensure_indexes(get_db())
    except Exception as e:
        logger.error(f"Error creating indexes: {e}")


app.include_router(api_router)

_cors_origins_raw = os.environ.get("CORS_ORIGINS", "*").strip()
_cors_origins = [o.strip() for o in _cors_origins_raw.split(",") if o.strip()] if _cors_origins_raw else ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=_cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=1024)


@app.on_event("shutdown")
async def shutdown_db_client():
    close_client()
