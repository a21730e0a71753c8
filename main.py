# main.py

import logging
from urllib.parse import quote

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel, Field

from md2word.doc_generator import DocumentPackagingError, build_export_filename, create_document
from md2word.logging_setup import setup_logging
from md2word.rasterizers import CodecogsMathRasterizer, DiagramRenderer, MathRasterizer, MermaidInkRenderer
from md2word.schemas import ExportOptions

setup_logging()
logger = logging.getLogger(__name__)

DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


class ExportRequest(BaseModel):
    markdown: str
    filename: str = "document"
    options: ExportOptions = Field(default_factory=ExportOptions)


app = FastAPI(
    title="Markdown to Word API",
    description="Converts Markdown with LaTeX math and Mermaid diagrams into .docx documents",
    version="1.0.0",
)

origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)


def get_diagram_renderer() -> DiagramRenderer:
    return MermaidInkRenderer()


def get_math_rasterizer() -> MathRasterizer:
    return CodecogsMathRasterizer()


@app.get("/")
def read_root():
    """
    Health check.

    Returns:
        dict: A status message.
    """
    return {"message": "Markdown to Word API is running."}


@app.post("/export")
async def export_endpoint(
        request: ExportRequest,
        diagram_renderer: DiagramRenderer = Depends(get_diagram_renderer),
        math_rasterizer: MathRasterizer = Depends(get_math_rasterizer),
):
    """
    Convert the posted Markdown and return it as a .docx attachment.

    Args:
        request (ExportRequest): Markdown source, base file name and export options.

    Raises:
        HTTPException: 400 for empty Markdown, 500 when the document cannot be packaged.

    Returns:
        Response: The .docx bytes named <filename>_<YYYY-MM-DD>.docx.
    """
    if not request.markdown.strip():
        raise HTTPException(status_code=400, detail="Markdown cannot be empty.")

    try:
        docx_bytes = await create_document(
            request.markdown,
            request.options,
            diagram_renderer=diagram_renderer,
            math_rasterizer=math_rasterizer,
        )
    except DocumentPackagingError as e:
        logger.error("Export failed: %s", e)
        raise HTTPException(status_code=500, detail=str(e))

    filename = build_export_filename(request.filename)
    headers = {"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"}
    return Response(content=docx_bytes, media_type=DOCX_MIME_TYPE, headers=headers)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=8000)
