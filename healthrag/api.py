"""Quart application exposing the knowledge base over HTTP."""
import time
from typing import Optional

import structlog
from pydantic import BaseModel, Field, ValidationError
from quart import Quart, jsonify, request

from healthrag import config
from healthrag.llm_client import Generator, OllamaClient
from healthrag.logging_setup import configure_logging
from healthrag.rag.errors import EmbeddingError
from healthrag.rag.retriever import format_context
from healthrag.rag.service import KnowledgeBase
from healthrag.rag.store_faiss import FAISSVectorIndex
from healthrag.rag.watcher import KnowledgeWatcher

logger = structlog.get_logger()

ANSWER_PROMPT = """You are a health check assistant. Answer the question using the
medical knowledge below. If the knowledge does not cover the question, say so.

Medical knowledge:
{context}

Question: {question}
Answer:"""


class SearchRequest(BaseModel):
    query: str = Field(min_length=1, max_length=2000)


class AskRequest(BaseModel):
    question: str = Field(min_length=1, max_length=2000)


def _validation_error(e: ValidationError):
    return jsonify({"error": "Invalid request", "details": e.errors(include_url=False)}), 400


async def _build_index(client: OllamaClient) -> FAISSVectorIndex:
    """Index sized from config, or from a test embedding when unset.

    A failed test embedding leaves the dimension to the first accepted record.
    """
    dimension = config.EMBEDDING_DIMENSION
    if dimension is None:
        try:
            dimension = await client.detect_dimension()
        except EmbeddingError as e:
            logger.warning("embedding_dimension_detection_failed", error=str(e))

    return FAISSVectorIndex(dimension=dimension, default_top_k=config.SEARCH_CANDIDATES)


def create_app(
    knowledge_base: Optional[KnowledgeBase] = None,
    generator: Optional[Generator] = None,
    ollama: Optional[OllamaClient] = None,
) -> Quart:
    """Build the Quart app.

    Without an injected knowledge base one is built at startup on an Ollama
    client and loaded from the knowledge directory.

    Args:
        knowledge_base: Pre-built knowledge base (tests, embedding hosts)
        generator: Text generation backend for /knowledge/ask
        ollama: Ollama client for startup and /health/ready (built at startup if omitted)

    Returns:
        Configured Quart app
    """
    app = Quart(__name__)
    app.extensions["knowledge_base"] = knowledge_base
    app.extensions["generator"] = generator
    app.extensions["ollama"] = ollama
    app.extensions["watcher"] = None

    def kb() -> KnowledgeBase:
        return app.extensions["knowledge_base"]

    @app.before_serving
    async def startup():
        if app.extensions["knowledge_base"] is None:
            client = app.extensions["ollama"] or OllamaClient()
            app.extensions["ollama"] = client
            app.extensions["knowledge_base"] = KnowledgeBase(
                embedder=client, index=await _build_index(client)
            )
            if app.extensions["generator"] is None:
                app.extensions["generator"] = client

            report = await kb().load_directory()
            logger.info("startup_ingestion_completed", **report.to_dict())

        if config.WATCH_KNOWLEDGE_DIR:
            watcher = KnowledgeWatcher(kb())
            watcher.start()
            app.extensions["watcher"] = watcher

    @app.after_serving
    async def shutdown():
        watcher = app.extensions["watcher"]
        if watcher is not None:
            watcher.stop()
        if kb() is not None:
            await kb().close()

    @app.route("/knowledge/search", methods=["POST"])
    async def search():
        """Search the knowledge base.

        Expects JSON body: {"query": "..."}
        Returns the search outcome with results, count and optional message/error.
        """
        try:
            body = SearchRequest.model_validate(await request.get_json(silent=True) or {})
        except ValidationError as e:
            return _validation_error(e)

        outcome = await kb().search(body.query)
        return jsonify(outcome.to_dict())

    @app.route("/knowledge/stats")
    async def stats():
        """Get knowledge base statistics."""
        return jsonify(kb().stats().to_dict())

    @app.route("/knowledge/reload", methods=["POST"])
    async def reload():
        """Rebuild the index from the knowledge directory and swap it in."""
        report = await kb().reload()
        return jsonify(
            {
                "message": "Knowledge base reloaded",
                "report": report.to_dict(),
                "timestamp": int(time.time() * 1000),
            }
        )

    @app.route("/knowledge/ask", methods=["POST"])
    async def ask():
        """Answer a question from retrieved knowledge.

        Expects JSON body: {"question": "..."}
        """
        try:
            body = AskRequest.model_validate(await request.get_json(silent=True) or {})
        except ValidationError as e:
            return _validation_error(e)

        generator = app.extensions["generator"]
        if generator is None:
            return jsonify({"error": "Answer generation is not configured"}), 503

        outcome = await kb().search(body.question)
        context = format_context(outcome.results)
        prompt = (
            ANSWER_PROMPT.format(context=context, question=body.question)
            if context
            else body.question
        )

        try:
            answer = await generator.generate(prompt)
        except Exception as e:
            logger.error("answer_generation_failed", error=str(e), error_type=type(e).__name__)
            return jsonify({"error": "Answer generation failed"}), 502

        return jsonify(
            {
                "answer": answer,
                "sources": [r.to_dict() for r in outcome.results],
                "usedKnowledge": bool(context),
            }
        )

    @app.route("/health/ready")
    async def health_ready():
        """Readiness check - whether the app can serve requests.

        Checks:
        - Ollama service is reachable
        - The embedding model is available
        """
        checks = {
            "status": "healthy",
            "ollama": False,
            "models": False,
            "chunks": len(kb().index) if kb() is not None else 0,
        }

        client = app.extensions["ollama"]
        if client is None:
            checks["status"] = "unhealthy"
            checks["error"] = "Ollama client not configured"
            return jsonify(checks), 503

        try:
            models = await client.list_models()
            checks["ollama"] = True

            if client.embedding_model in models:
                checks["models"] = True
            else:
                checks["status"] = "unhealthy"
                checks["error"] = f"Missing embedding model: {client.embedding_model}"

        except Exception as e:
            logger.error("health_check_failed", error=str(e))
            checks["status"] = "unhealthy"
            checks["error"] = str(e)

        status_code = 200 if checks["status"] == "healthy" else 503
        return jsonify(checks), status_code

    @app.route("/health/live")
    async def health_live():
        """Liveness check - whether the app is running."""
        return jsonify({"status": "alive"}), 200

    @app.errorhandler(404)
    async def not_found(error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    async def internal_error(error):
        logger.error("internal_server_error", error=str(error))
        return jsonify({"error": "Internal server error"}), 500

    return app


def main():
    """Run the development server; use hypercorn for production."""
    configure_logging()
    create_app().run(host="0.0.0.0", port=5000)


if __name__ == "__main__":
    main()
