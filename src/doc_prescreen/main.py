import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Dict, Optional

from pydantic import ValidationError

from doc_prescreen.errors import ConfigurationError, InputError
from doc_prescreen.models import ApplicantData, UploadedDocument
from doc_prescreen.pipeline import ValidationSession
from doc_prescreen.settings import Settings
from doc_prescreen.tools.extraction import build_extractor
from doc_prescreen.tools.registry import load_registry
from doc_prescreen.tools.snapshot import persist_snapshot

LOGGER = logging.getLogger("doc_prescreen")


def _parse_doc_arg(value: str):
    key, sep, path = value.partition("=")
    if not sep or not key or not path:
        raise argparse.ArgumentTypeError(f"expected KEY=PATH, got {value!r}")
    return key.strip(), Path(path.strip())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Pre-screen supporting documents before portal submission")
    parser.add_argument("--doc", action="append", type=_parse_doc_arg, default=[], metavar="KEY=PATH",
                        help="Document to validate, e.g. passportPhoto=photo.jpg (repeatable)")
    parser.add_argument("--applicant", help="JSON file with firstName, lastName, dob, address, city, state, pincode")
    parser.add_argument("--strategy", choices=["local", "remote"], help="Text extraction strategy")
    parser.add_argument("--rules", help="Path to a document rules YAML file")
    parser.add_argument("--output", help="Snapshot JSON path (default: snapshot dir/file from env)")
    return parser


def load_applicant(path: Optional[str]) -> Optional[ApplicantData]:
    """Read the declared form values; raises InputError when the file is unusable."""
    if not path:
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            return ApplicantData.model_validate(json.load(f))
    except OSError as exc:
        raise InputError(f"Applicant file not readable: {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise InputError(f"Applicant file is not valid JSON: {path}: {exc}") from exc
    except ValidationError as exc:
        raise InputError(f"Applicant file has invalid fields: {path}: {exc}") from exc


def load_documents(doc_args) -> Dict[str, UploadedDocument]:
    """Open each KEY=PATH argument; raises InputError for a path that does not exist."""
    documents: Dict[str, UploadedDocument] = {}
    for key, path in doc_args:
        if not path.is_file():
            raise InputError(f"File not found: {path}")
        documents[key] = UploadedDocument.from_path(path)
    return documents


def run(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        registry = load_registry(args.rules or settings.rules_path)
    except ConfigurationError as exc:
        LOGGER.error("%s", exc)
        return 2

    try:
        applicant = load_applicant(args.applicant)
        documents = load_documents(args.doc)
    except InputError as exc:
        LOGGER.error("%s", exc)
        return 1

    if args.strategy:
        settings = replace(settings, extraction_strategy=args.strategy)
    extractor = build_extractor(registry, settings)

    with ValidationSession(registry, extractor, applicant, settings.max_workers) as session:
        for key, document in documents.items():
            session.set_document(key, document)
        results, risk = session.assess()

    for key, result in results.items():
        print(f"{result.label:<24} {result.status}")
        for issue in result.issues:
            print(f"    - {issue}")
    print(f"\nRejection risk: {risk.score}/100 ({risk.level})")
    for reason in risk.reasons:
        print(f"  * {reason}")

    if args.output:
        out = Path(args.output)
        persist_snapshot(results, risk, out_dir=out.parent, filename=out.name)
    else:
        persist_snapshot(results, risk, out_dir=settings.snapshot_dir, filename=settings.snapshot_file)
    return 0


if __name__ == "__main__":
    sys.exit(run())
