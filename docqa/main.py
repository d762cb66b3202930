"""Quart application exposing document upload and question answering."""
import logging
from typing import Optional

from quart import Quart, request, jsonify
from pydantic import BaseModel, Field, ValidationError
import structlog

from docqa import config
from docqa.documents import extract_text, is_supported
from docqa.errors import ConfigurationError, DocumentError
from docqa.llm_client import ollama_client
from docqa.rag.composer import AnswerComposer
from docqa.rag.ingest import IngestPipeline
from docqa.rag.qa_store import QAStore

logging.basicConfig(level=config.LOG_LEVEL.upper(), format="%(message)s")

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = structlog.get_logger()


class AskRequest(BaseModel):
    """Body of POST /api/chat/ask."""

    question: str = Field(min_length=1, max_length=2000)
    max_docs: Optional[int] = Field(default=None, ge=1)
    max_context_chars: Optional[int] = Field(default=None, ge=0)


def create_app(
    pipeline: Optional[IngestPipeline] = None,
    composer: Optional[AnswerComposer] = None,
) -> Quart:
    """Build the application.

    Args:
        pipeline: Ingest pipeline used for uploads (default built from config)
        composer: Answer composer used for questions (default built from config)
    """
    app = Quart(__name__)
    app.config["MAX_CONTENT_LENGTH"] = config.MAX_UPLOAD_BYTES

    if pipeline is None:
        pipeline = IngestPipeline(store=QAStore())
    if composer is None:
        composer = AnswerComposer(retriever=pipeline.store)

    @app.route("/api/pdf/upload", methods=["POST"])
    async def upload_document():
        """Extract QA pairs from an uploaded document and store them.

        Expects multipart form data with a ``file`` field and an optional
        ``concurrency`` field.

        Returns JSON:
        {
            "filename": "...",
            "chunk_count": 12,
            "records_extracted": 30,
            "records_stored": 30,
            "failures": [...],
            "storage_error": null
        }
        """
        files = await request.files
        form = await request.form
        upload = files.get("file")

        if upload is None or not upload.filename:
            return jsonify({"error": "Please select a file to upload"}), 400

        if not is_supported(upload.filename, upload.content_type):
            return jsonify({"error": "Only PDF, text and markdown files are allowed"}), 400

        concurrency = form.get("concurrency")
        try:
            concurrency_limit = int(concurrency) if concurrency else None
        except ValueError:
            return jsonify({"error": "concurrency must be an integer"}), 400

        try:
            text = extract_text(upload.read(), upload.filename, upload.content_type)
        except DocumentError as e:
            return jsonify({"error": str(e)}), 400

        logger.info(
            "document_upload_received",
            filename=upload.filename,
            text_length=len(text),
        )

        try:
            result = await pipeline.ingest_text(
                text, source=upload.filename, concurrency_limit=concurrency_limit
            )
        except ConfigurationError as e:
            return jsonify({"error": str(e)}), 400

        body = {"filename": upload.filename, **result.to_dict()}

        if result.storage_error is not None:
            return jsonify(body), 500

        return jsonify(body), 200

    @app.route("/api/chat/ask", methods=["POST"])
    async def ask():
        """Answer a question from the stored QA pairs.

        Accepts a JSON body or a form / query parameter:
        {
            "question": "user question",
            "max_docs": 3,              // optional
            "max_context_chars": 4000   // optional
        }

        Returns JSON:
        {
            "answer": "answer text",
            "sources": [...],
            "degraded": false
        }
        """
        data = await request.get_json(silent=True)
        if data is None:
            form = await request.form
            data = {**request.args.to_dict(), **form.to_dict()}

        try:
            ask_request = AskRequest.model_validate(data)
        except ValidationError as e:
            logger.warning("invalid_ask_request", errors=e.error_count())
            details = e.errors(include_url=False, include_context=False, include_input=False)
            return jsonify({"error": "Invalid request", "details": details}), 400

        composed = await composer.respond(
            ask_request.question,
            max_docs=ask_request.max_docs,
            max_context_chars=ask_request.max_context_chars,
        )
        return jsonify(composed.to_dict())

    @app.route("/api/stats")
    async def stats():
        """Report the size of the QA store."""
        return jsonify(pipeline.store.get_stats())

    @app.route("/health/ready")
    async def health_ready():
        """Readiness check: verify that Ollama is reachable and the chat model exists."""
        checks = {
            "status": "healthy",
            "ollama": False,
            "models": False,
        }

        try:
            models = await ollama_client.list_models()
            checks["ollama"] = True

            if config.CHAT_MODEL in models:
                checks["models"] = True
            else:
                checks["status"] = "unhealthy"
                checks["error"] = f"Missing chat model: {config.CHAT_MODEL}"

            status_code = 200 if checks["status"] == "healthy" else 503
            return jsonify(checks), status_code

        except Exception as e:
            logger.error("health_check_failed", error=str(e))
            checks["status"] = "unhealthy"
            checks["error"] = str(e)
            return jsonify(checks), 503

    @app.route("/health/live")
    async def health_live():
        """Liveness check: the app is running."""
        return jsonify({"status": "alive"}), 200

    @app.errorhandler(404)
    async def not_found(error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(413)
    async def too_large(error):
        return jsonify({"error": "File too large"}), 413

    @app.errorhandler(500)
    async def internal_error(error):
        logger.error("internal_server_error", error=str(error))
        return jsonify({"error": "Internal server error"}), 500

    return app


app = create_app()


if __name__ == "__main__":
    # For development; serve with `hypercorn docqa.main:app` in production
    app.run(host="0.0.0.0", port=5000, debug=True)
