from collections import deque
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from .auth import require_auth, token_for
from ..logging import error_log_path
from .schemas import (
    HoldingRequest,
    TotalCostRequest,
    SnapshotRequest,
    HistoryModeRequest,
    LoginRequest,
    TagRequest,
    ProjectRequest,
    MigrateRequest,
)
from ..pipeline.history import export_csv
from ..pipeline.session import PortfolioSession
from ..providers.coingecko_adapter import coin_name
from ..utils import now_utc, parse_date_bound

router = APIRouter()
api = APIRouter(prefix="/api", dependencies=[Depends(require_auth)])


def get_session(request: Request) -> PortfolioSession:
    return request.app.state.session


# ── public ───────────────────────────────────────────────────────────────────

@router.get(
    '/health',
    summary="Health check",
    description="Returns storage connectivity and session status.",
    tags=["Health"],
)
def health(session: PortfolioSession = Depends(get_session)):
    ok = session.store.ping()
    if not ok:
        raise HTTPException(503, f'storage_unavailable: {session.store.backend}')
    return {
        'ok': True,
        'storage': session.store.backend,
        'holdings': len(session.ledger),
        'history_entries': len(session.history.entries),
        'prices_updated_at': session.prices_updated_at,
    }

@router.post(
    '/login',
    summary="Log in",
    description="Exchanges the site password for the auth token expected by /api routes.",
    tags=["Auth"],
)
def login(req: LoginRequest, request: Request):
    password = getattr(request.app.state, "site_password", None)
    if not password:
        return {'success': True, 'token': None}
    if req.password != password:
        raise HTTPException(401, 'Invalid password')
    return {'success': True, 'token': token_for(password)}

@router.post('/logout', summary="Log out", tags=["Auth"])
def logout():
    resp = JSONResponse({'success': True})
    resp.delete_cookie('profolio_auth', path='/', httponly=True, samesite='strict')
    return resp

@router.get(
    '/logs',
    summary="Read error logs",
    description="Returns the last N lines from the error log file.",
    tags=["Admin"],
    dependencies=[Depends(require_auth)],
)
def read_logs(lines: int = 200):
    if lines < 1:
        raise HTTPException(400, 'lines must be >= 1')
    if lines > 2000:
        lines = 2000
    path = error_log_path()
    if not path.exists():
        raise HTTPException(404, 'log file not found')
    tail = deque(maxlen=lines)
    with path.open("r", encoding="utf-8", errors="replace") as handle:
        for line in handle:
            tail.append(line.rstrip("\n"))
    return {"path": str(path), "lines": list(tail)}


# ── ledger ───────────────────────────────────────────────────────────────────

@api.get('/portfolio', summary="Read holdings", tags=["Portfolio"])
def get_portfolio(session: PortfolioSession = Depends(get_session)):
    return session.ledger.to_list()

@api.post(
    '/portfolio',
    summary="Replace holdings",
    description="Replaces the whole ledger with the posted list of holdings.",
    tags=["Portfolio"],
)
def save_portfolio(rows: list[dict], session: PortfolioSession = Depends(get_session)):
    count = session.replace_portfolio(rows)
    return {'success': True, 'count': count}

@api.get(
    '/summary',
    summary="Portfolio summary",
    description=(
        "Per-holding value, P&L and share of total plus the aggregate totals. "
        "Each call records a session history entry. Default order: currentValue desc."
    ),
    tags=["Portfolio"],
)
def summary(sort: str | None = None, order: str | None = None, session: PortfolioSession = Depends(get_session)):
    out = session.summary(sort, order)
    for row in out["holdings"]:
        row["name"] = coin_name(row["symbol"])
    return out

@api.post('/holdings', summary="Add or merge a holding", tags=["Portfolio"])
def add_holding(req: HoldingRequest, session: PortfolioSession = Depends(get_session)):
    holding = session.add_holding(req.symbol, req.amount, req.purchasePrice, req.note)
    return {'success': True, 'holding': holding.to_dict()}

@api.delete('/holdings/{symbol}', summary="Remove a holding", tags=["Portfolio"])
def remove_holding(symbol: str, note: str = "", session: PortfolioSession = Depends(get_session)):
    removed = session.remove_holding(symbol, note)
    return {'success': True, 'removed': removed}

@api.delete('/holdings', summary="Remove every holding", tags=["Portfolio"])
def clear_holdings(session: PortfolioSession = Depends(get_session)):
    session.clear_holdings()
    return {'success': True}

@api.post(
    '/total-cost',
    summary="Set total cost override",
    description="Overrides the aggregate cost basis and records a snapshot.",
    tags=["Portfolio"],
)
def set_total_cost(req: TotalCostRequest, session: PortfolioSession = Depends(get_session)):
    snapshot = session.set_cost_override(req.totalCost)
    return {'success': True, 'totalCost': snapshot.total_cost, 'snapshot': snapshot.to_dict()}

@api.delete(
    '/total-cost',
    summary="Reset total cost override",
    description="Returns to the sum of per-holding cost and records a snapshot.",
    tags=["Portfolio"],
)
def reset_total_cost(session: PortfolioSession = Depends(get_session)):
    snapshot = session.reset_cost_override()
    return {'success': True, 'totalCost': snapshot.total_cost, 'snapshot': snapshot.to_dict()}

@api.get('/latest-totalcost', summary="Total cost of the newest snapshot", tags=["Snapshots"])
def latest_total_cost(session: PortfolioSession = Depends(get_session)):
    return {'totalCost': session.snapshots.latest_total_cost()}

@api.get('/transactions', summary="List transactions", tags=["Transactions"])
def list_transactions(session: PortfolioSession = Depends(get_session)):
    return session.transactions.all()

@api.post('/transactions', summary="Append a transaction", tags=["Transactions"])
def add_transaction(payload: dict, session: PortfolioSession = Depends(get_session)):
    session.transactions.append_raw(payload)
    return {'success': True, 'message': 'Transaction recorded successfully'}

@api.get('/export', summary="Export holdings", tags=["Portfolio"])
def export_portfolio(session: PortfolioSession = Depends(get_session)):
    filename = f"portfolio-export-{now_utc().strftime('%Y-%m-%d')}.json"
    return JSONResponse(
        session.export_portfolio(),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

@api.post('/import', summary="Import holdings", tags=["Portfolio"])
def import_portfolio(payload: dict, session: PortfolioSession = Depends(get_session)):
    count = session.import_portfolio(payload)
    return {'success': True, 'message': 'Portfolio imported successfully', 'count': count}


# ── snapshots ────────────────────────────────────────────────────────────────

@api.get(
    '/snapshots',
    summary="List snapshots",
    description="All stored snapshots, oldest first. recent=true returns only the session's recent list.",
    tags=["Snapshots"],
)
def list_snapshots(recent: bool = False, session: PortfolioSession = Depends(get_session)):
    if recent:
        return [s.to_dict() for s in session.recent_snapshots()]
    return session.snapshots.list_raw()

@api.post(
    '/snapshots',
    summary="Bulk save snapshots",
    description="Persists raw snapshot documents as-is (used by import and migration tools).",
    tags=["Snapshots"],
)
def save_snapshots(docs: list[dict], session: PortfolioSession = Depends(get_session)):
    count = session.save_snapshots(docs)
    return {'success': True, 'saved': count}

@api.delete('/snapshots', summary="Delete all snapshots", tags=["Snapshots"])
def delete_all_snapshots(session: PortfolioSession = Depends(get_session)):
    return {'success': True, 'deleted': session.delete_all_snapshots()}

@api.post('/snapshots/create', summary="Take a manual snapshot", tags=["Snapshots"])
def create_snapshot(req: SnapshotRequest | None = None, session: PortfolioSession = Depends(get_session)):
    snapshot = session.create_snapshot(req.description if req else None)
    return {'success': True, 'snapshot': snapshot.to_dict()}

@api.post(
    '/snapshots/auto',
    summary="Automatic snapshot",
    description="Creates a 'Page Refresh' snapshot unless one was stored within the configured interval.",
    tags=["Snapshots"],
)
def auto_snapshot(session: PortfolioSession = Depends(get_session)):
    snapshot = session.maybe_auto_snapshot()
    return {'created': snapshot is not None, 'snapshot': snapshot.to_dict() if snapshot else None}

@api.post('/snapshots/load-latest', summary="Load the newest snapshot", tags=["Snapshots"])
def load_latest_snapshot(session: PortfolioSession = Depends(get_session)):
    snapshot = session.load_latest_snapshot()
    if snapshot is None:
        return {'loaded': False}
    return {'loaded': True, 'snapshot': {'id': snapshot.id, 'timestamp': snapshot.timestamp, 'description': snapshot.description}}

@api.post('/snapshots/{snapshot_id}/restore', summary="Restore a snapshot", tags=["Snapshots"])
def restore_snapshot(snapshot_id: str, session: PortfolioSession = Depends(get_session)):
    snapshot = session.restore_snapshot(snapshot_id)
    return {'success': True, 'description': snapshot.description, 'portfolio': session.ledger.to_list()}

@api.get('/snapshots/{snapshot_id}/compare', summary="Compare a snapshot with now", tags=["Snapshots"])
def compare_snapshot(snapshot_id: str, session: PortfolioSession = Depends(get_session)):
    return session.compare_snapshot(snapshot_id)

@api.delete('/snapshots/{snapshot_id}', summary="Delete a snapshot", tags=["Snapshots"])
def delete_snapshot(snapshot_id: str, session: PortfolioSession = Depends(get_session)):
    session.delete_snapshot(snapshot_id)
    return {'success': True}


# ── history ──────────────────────────────────────────────────────────────────

@api.get(
    '/history',
    summary="Chart history",
    description="Snapshot-backed series when mode=snapshot and snapshots exist, otherwise the session history.",
    tags=["History"],
)
def history(mode: str | None = None, session: PortfolioSession = Depends(get_session)):
    current = None if session.ledger.is_empty else session.current_entry()
    return session.history.chart_series(session.snapshots.list_raw(), mode, current)

@api.put('/history/mode', summary="Switch chart source", tags=["History"])
def set_history_mode(req: HistoryModeRequest, session: PortfolioSession = Depends(get_session)):
    return {'mode': session.history.set_mode(req.mode)}

@api.get(
    '/export-history',
    summary="Export daily history CSV",
    description="One row per UTC day (latest snapshot of the day) within [startDate, endDate].",
    tags=["History"],
)
def export_history(startDate: str | None = None, endDate: str | None = None, session: PortfolioSession = Depends(get_session)):
    try:
        start = parse_date_bound(startDate)
        end = parse_date_bound(endDate, end_of_day=True)
    except ValueError as e:
        raise HTTPException(400, str(e))
    filename, body = export_csv(session.snapshots.list_raw(), start, end)
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ── prices ───────────────────────────────────────────────────────────────────

@api.post('/prices/refresh', summary="Refresh prices now", tags=["Prices"])
def refresh_prices(request: Request, session: PortfolioSession = Depends(get_session)):
    prices = session.refresh_prices(request.app.state.price_adapter)
    return {'success': True, 'prices': prices, 'updatedAt': session.prices_updated_at}


# ── projects ─────────────────────────────────────────────────────────────────

@api.get('/projects', summary="List projects and tags", tags=["Projects"])
def list_projects(session: PortfolioSession = Depends(get_session)):
    return session.projects.document()

@api.post('/projects', summary="Add a project", tags=["Projects"])
def add_project(req: ProjectRequest, session: PortfolioSession = Depends(get_session)):
    project = session.projects.add_project(req.model_dump())
    return {'success': True, 'project': project}

@api.post('/projects/tags', summary="Add a custom tag", tags=["Projects"])
def add_tag(req: TagRequest, session: PortfolioSession = Depends(get_session)):
    tag, all_tags = session.projects.add_tag(req.tag)
    return {'success': True, 'tag': tag, 'allTags': all_tags}

@api.delete('/projects/tags/{tag}', summary="Delete a custom tag", tags=["Projects"])
def delete_tag(tag: str, session: PortfolioSession = Depends(get_session)):
    return {'success': True, 'message': 'Tag deleted', 'allTags': session.projects.delete_tag(tag)}

@api.put('/projects/{project_id}', summary="Update a project", tags=["Projects"])
def update_project(project_id: str, updates: dict, session: PortfolioSession = Depends(get_session)):
    return {'success': True, 'project': session.projects.update_project(project_id, updates)}

@api.delete('/projects/{project_id}', summary="Delete a project", tags=["Projects"])
def delete_project(project_id: str, session: PortfolioSession = Depends(get_session)):
    session.projects.delete_project(project_id)
    return {'success': True, 'message': 'Project deleted'}


# ── migration ────────────────────────────────────────────────────────────────

@api.post(
    '/migrate',
    summary="Upload local data into the Redis store",
    description="Only available when the Redis backend is active.",
    tags=["Admin"],
)
def migrate(req: MigrateRequest, session: PortfolioSession = Depends(get_session)):
    return {'success': True, 'migrated': session.migrate(req.model_dump(exclude_none=True))}
