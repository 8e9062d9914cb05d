from fastapi import FastAPI, UploadFile, File, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from core.storage import get_workspace, record_upload
from core.utils import df_to_records_safe
from server.api import router as charts_router, require_session_id
import pandas as pd
import io
from dotenv import load_dotenv
import logging
import json

logger = logging.getLogger("uvicorn.error")
load_dotenv()
app = FastAPI(title="InsightFlow Charts", description="Turn tabular data into configurable charts")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount the chart API router
app.include_router(charts_router)


def _log_response(ctx: str, payload) -> None:
    """Pretty-print JSON-able payloads; fall back to str()."""
    try:
        logger.info("%s response: %s", ctx, json.dumps(payload, indent=2, default=str))
    except (TypeError, ValueError):
        logger.info("%s response (non-serializable): %s", ctx, str(payload))


def _read_csv(content: bytes) -> pd.DataFrame:
    # pyarrow engine when available; the default parser otherwise
    try:
        return pd.read_csv(io.BytesIO(content), engine="pyarrow")
    except Exception:
        try:
            return pd.read_csv(io.BytesIO(content))
        except Exception as e:
            logger.exception("Failed to read CSV")
            raise HTTPException(status_code=400, detail=f"Failed to read CSV: {e}")


@app.post("/upload")
async def upload(request: Request, file: UploadFile = File(...)):
    sid = require_session_id(request)
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")

    filename = file.filename or "table.csv"
    ext = (filename.rsplit(".", 1)[1].lower() if "." in filename else "").strip()
    if ext and ext not in ("csv", "txt"):
        raise HTTPException(status_code=400, detail=f"Unsupported file type '.{ext}'; upload a CSV.")

    df = _read_csv(content)
    fields = [str(c) for c in df.columns]
    df.columns = fields
    rows = df_to_records_safe(df)

    workspace = get_workspace(sid)
    workspace.replace_dataset(filename, fields, rows)
    record_upload(sid, filename, len(rows), len(fields))

    resp = {
        "ok": True,
        "identifier": filename,
        "fields": fields,
        "rows": len(rows),
        "numeric": workspace.classification.numeric,
        "categorical": workspace.classification.categorical,
    }
    _log_response("UPLOAD", resp)
    return resp


@app.get("/health")
def health():
    return {"ok": True}
