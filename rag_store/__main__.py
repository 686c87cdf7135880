"""
Ingest a text file and ask questions against it.

    python -m rag_store path/to/document.txt
"""
import argparse
import os

from .config import configure_logging
from .errors import RagStoreError
from .store import DocumentStore


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Index a text document and retrieve context for questions"
    )
    parser.add_argument("document", help="Path to a UTF-8 text file")
    parser.add_argument("-n", "--name", help="Display name (defaults to the file name)")
    parser.add_argument("--log-level", default=None, help="Logging level (default: LOG_LEVEL or INFO)")
    args = parser.parse_args(argv)

    configure_logging(args.log_level)

    with open(args.document, "r", encoding="utf-8") as f:
        text = f.read()

    with DocumentStore.from_env() as store:
        try:
            result = store.ingest(text, name=args.name or os.path.basename(args.document))
        except RagStoreError as e:
            print(f"Ingest failed: {e}")
            return 1

        print("\n" + "=" * 60)
        print(f"Stored '{result.name}' ({result.document_id})")
        print(f"  Backend: {result.backend}")
        print(f"  Chunks: {result.chunk_count} ({len(result.skipped_chunks)} skipped)")
        print("=" * 60)

        while True:
            try:
                question = input("\nQuestion (empty to quit): ").strip()
            except EOFError:
                break
            if not question:
                break

            try:
                answer = store.query(result.document_id, question)
            except RagStoreError as e:
                print(f"Query failed: {e}")
                continue

            for rank, chunk in enumerate(answer.context_chunks, 1):
                preview = chunk[:200].replace("\n", " ")
                print(f"\n{rank}. [{answer.source}] {preview}...")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
