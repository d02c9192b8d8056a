from __future__ import annotations

import argparse
import threading
from pathlib import Path
from typing import Any, Dict

from dotenv import load_dotenv

from stream_translate import storage
from stream_translate.config import load_config
from stream_translate.consumer import AttemptState, TranslationAttempt, TranslationClient
from stream_translate.protocol import ArticlePayload
from stream_translate.utils import setup_logger


def load_article(args: argparse.Namespace) -> ArticlePayload:
    if args.article:
        return ArticlePayload.from_payload(storage.read_json(args.article))
    return ArticlePayload(title=args.title or Path(args.html).stem, content=storage.read_text(args.html))


def attempt_summary(attempt: TranslationAttempt) -> Dict[str, Any]:
    return {
        "state": attempt.state.value,
        "title": attempt.title,
        "lang": attempt.language_code,
        "content": attempt.accumulated_markup,
        "textContent": attempt.text_content,
        "readyForNarration": attempt.ready_for_narration,
        "notices": list(attempt.notices),
        "error": attempt.error,
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="Translate one article through a streaming translation server.")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--article", type=str, help="Article JSON (title, content, textContent, ...)")
    source.add_argument("--html", type=str, help="Raw article body HTML")
    parser.add_argument("--title", type=str, default="", help="Title when using --html")
    parser.add_argument("-t", "--target-language", required=True, help="Target language code, e.g. es")
    parser.add_argument("-l", "--reading-age", default="intermediate", help="beginner | intermediate | advanced")
    parser.add_argument("-r", "--region", default=None, help="Optional dialect region, e.g. mx")
    parser.add_argument("--server", type=str, default="", help="Override client.base_url")
    parser.add_argument("--config", type=str, default="", help="Path to config.json")
    parser.add_argument("--out", type=str, default="", help="Write the translated HTML here")
    parser.add_argument("--json-out", type=str, default="", help="Write the attempt summary as JSON here")
    args = parser.parse_args()

    load_dotenv()

    cfg = load_config(args.config or None)
    logger = setup_logger(cfg["paths"].get("logs_dir", "logs"))
    article = load_article(args)

    client = TranslationClient(
        base_url=args.server or cfg["client"].get("base_url", "http://127.0.0.1:8000"),
        timeout=float(cfg["client"].get("timeout_seconds", 120.0)),
        word_threshold=int(cfg["readiness"].get("word_threshold", 300)),
        logger=logger,
    )
    announced = threading.Event()

    def on_update(attempt: TranslationAttempt) -> None:
        if attempt.ready_for_narration and not announced.is_set():
            announced.set()
            logger.info("Narration can start (%s chars received).", len(attempt.accumulated_markup))

    attempt = client.start(article, args.target_language, args.reading_age, args.region)
    worker = threading.Thread(target=client.run, args=(attempt, on_update), daemon=True)
    worker.start()
    try:
        while worker.is_alive():
            worker.join(0.2)
    except KeyboardInterrupt:
        logger.info("Interrupted; cancelling translation…")
        client.cancel()
        worker.join()
    finally:
        client.close()

    if args.out and attempt.accumulated_markup:
        storage.write_text(args.out, attempt.accumulated_markup)
        logger.info(f"   Exported: {args.out}")
    if args.json_out:
        storage.write_json(args.json_out, attempt_summary(attempt))

    if attempt.state is AttemptState.FAILED:
        raise SystemExit(1)
    if attempt.state is AttemptState.CANCELLED:
        raise SystemExit(130)


if __name__ == "__main__":
    main()
