import logging
import sys

from dotenv import load_dotenv

from app.config import get_llm_connector, intent_config_from_env, orchestrator_config_from_env
from app.core.field_extractor import FieldExtractor
from app.core.intent_classifier import IntentClassifier
from app.core.orchestrator import Orchestrator
from app.utils.logger_config import setup_logging

logger = logging.getLogger(__name__)

COMMANDS = "/generate  /undo  /redo  /status  /quit"


def build_orchestrator() -> Orchestrator:
    intent_config = intent_config_from_env()
    extractor = FieldExtractor(intent_config.min_field_confidence)
    return Orchestrator(
        config=orchestrator_config_from_env(),
        llm_connector=get_llm_connector(),
        classifier=IntentClassifier(intent_config, extractor),
        extractor=extractor,
    )


def run(mode: str = "universe"):
    orchestrator = build_orchestrator()
    session_id = orchestrator.start_session(mode)
    print(f"[{mode}] {COMMANDS}")

    while True:
        try:
            text = input("> ").strip()
        except (EOFError, KeyboardInterrupt):
            break
        if not text:
            continue
        if text == "/quit":
            break

        if text == "/generate":
            result = orchestrator.generate_final_entity(session_id)
        elif text == "/undo":
            result = orchestrator.undo(session_id)
        elif text == "/redo":
            result = orchestrator.redo(session_id)
        elif text == "/status":
            print(orchestrator.get_session_summary(session_id).model_dump_json(indent=2))
            continue
        else:
            result = orchestrator.process_message(session_id, text)

        print(result.response)
        if result.suggested_actions:
            print("  · " + " | ".join(a.label for a in result.suggested_actions))
        if result.generated_entity is not None:
            print(result.model_dump_json(include={"generated_entity"}, indent=2))

    orchestrator.end_session(session_id)


if __name__ == "__main__":
    load_dotenv()
    setup_logging()
    run(sys.argv[1] if len(sys.argv) > 1 else "universe")
