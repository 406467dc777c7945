"""FastAPI main application."""

from typing import Any, Dict, List, Optional, Tuple

import structlog
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .. import __version__
from ..config import settings
from ..core.graph import CellGraph
from ..core.hydrology import Hydrology
from ..core.options import HydrologyOptions
from ..logging_config import configure_logging

configure_logging(settings.log_level, settings.log_format)

logger = structlog.get_logger()

app = FastAPI(
    title="Hydrology API",
    description="Depression resolution, flow routing, lakes and river geometry over cell graphs",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request/Response models
class CellInput(BaseModel):
    """One cell of the posted graph."""

    id: Optional[int] = Field(None, description="Cell id; defaults to the position in the list")
    x: float = Field(..., description="Plotting x coordinate of the cell center")
    y: float = Field(..., description="Plotting y coordinate of the cell center")
    height: Optional[float] = Field(None, description="Height in [0, 1]; missing marks the cell invalid")
    neighbors: Optional[List[int]] = Field(None, description="Neighbor cell ids")
    precipitation: float = Field(0.0, description="Precipitation on the cell")
    polygon: Optional[List[Tuple[float, float]]] = Field(None, description="Polygon ring vertices")
    flux: Optional[float] = Field(None, description="Pre-set flux replacing precipitation as input")
    border: Optional[bool] = Field(None, description="Whether the cell touches the map edge")


class HydrologyRunRequest(BaseModel):
    """Request to run the hydrology pipeline on a graph."""

    cells: List[CellInput] = Field(default_factory=list)
    width: float = Field(0.0, ge=0, description="Map width; derived from geometry when 0")
    height: float = Field(0.0, ge=0, description="Map height; derived from geometry when 0")
    seed: Optional[str] = Field(None, description="Random seed for reproducible geometry")
    options: Dict[str, Any] = Field(default_factory=dict, description="HydrologyOptions overrides")
    include_cells: bool = Field(True, description="Return per-cell fields")


class HydrologyRunSummary(BaseModel):
    """Headline counts of a run."""

    n_cells: int
    rivers: int
    sources: int
    mouths: int
    lakes: int
    water_components: int
    segments: int
    diagnostics: int


# API endpoints
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Hydrology API",
        "version": __version__,
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.post("/hydrology/run")
def run_hydrology(request: HydrologyRunRequest):
    """Run the full pipeline on the posted graph and return its results."""
    if len(request.cells) > settings.max_cells:
        raise HTTPException(
            status_code=400,
            detail=f"Graph has {len(request.cells)} cells, the limit is {settings.max_cells}",
        )

    overrides = dict(request.options)
    if request.seed is not None:
        overrides["seed"] = request.seed
    elif overrides.get("seed") is None:
        overrides["seed"] = settings.default_seed
    try:
        options = HydrologyOptions(**overrides)
    except (TypeError, ValueError) as e:
        logger.warning("Rejected hydrology options", error=str(e))
        raise HTTPException(status_code=422, detail=f"Invalid options: {e}")

    graph = None
    if request.cells:
        graph = CellGraph.from_cells(
            [cell.model_dump() for cell in request.cells],
            width=request.width,
            height=request.height,
        )

    logger.info("Hydrology run requested", cells=len(request.cells), seed=str(options.seed))
    result = Hydrology(graph, options).run_full_simulation()

    summary = HydrologyRunSummary(
        n_cells=result.n_cells,
        rivers=result.channels.segments,
        sources=result.channels.sources,
        mouths=result.channels.mouths,
        lakes=result.lake_stats.lakes,
        water_components=len(result.water.components),
        segments=len(result.segments),
        diagnostics=len(result.diagnostics),
    )

    payload = result.to_dict(include_cells=request.include_cells)
    payload["summary"] = summary.model_dump()
    return payload


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
