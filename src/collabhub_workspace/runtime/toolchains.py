"""Language helper scripts installed into every new workspace."""

from __future__ import annotations

COMPILE_CPP = """#!/bin/bash
# compile-cpp <source> [output] [c|cpp]
set -e
SOURCE_FILE="$1"
OUTPUT="${2:-/tmp/collabhub/bin/$(basename "${SOURCE_FILE%.*}")}"
LANGUAGE="${3:-cpp}"
if [ -z "$SOURCE_FILE" ]; then
    echo "Usage: compile-cpp <source-file> [output] [c|cpp]"
    exit 1
fi
if [ "$LANGUAGE" = "c" ]; then
    gcc -Wall -O2 -o "$OUTPUT" "$SOURCE_FILE" -lm
else
    g++ -std=c++17 -Wall -O2 -o "$OUTPUT" "$SOURCE_FILE"
fi
echo "Compiled: $OUTPUT"
"""

RUN_PYTHON = """#!/bin/bash
# run-python <source> [args...]
set -e
if [ -z "$1" ]; then
    echo "Usage: run-python <source-file> [arguments...]"
    exit 1
fi
exec python3 "$@"
"""

RUN_JAVA = """#!/bin/bash
# run-java <source> [class] [args...]
set -e
SOURCE_FILE="$1"
if [ -z "$SOURCE_FILE" ]; then
    echo "Usage: run-java <source-file> [class-name] [arguments...]"
    exit 1
fi
CLASS_NAME="${2:-$(basename "${SOURCE_FILE%.*}")}"
shift 2 2>/dev/null || shift
javac -d /tmp/collabhub/build "$SOURCE_FILE"
exec java -cp /tmp/collabhub/build "$CLASS_NAME" "$@"
"""

RUN_NODE = """#!/bin/bash
# run-node <source> [args...]
set -e
if [ -z "$1" ]; then
    echo "Usage: run-node <source-file> [arguments...]"
    exit 1
fi
exec node "$@"
"""

RUN_GO = """#!/bin/bash
# run-go <source> [output] [args...]
set -e
SOURCE_FILE="$1"
if [ -z "$SOURCE_FILE" ]; then
    echo "Usage: run-go <source-file> [output] [arguments...]"
    exit 1
fi
OUTPUT="${2:-/tmp/collabhub/bin/$(basename "${SOURCE_FILE%.*}")}"
shift 2 2>/dev/null || shift
go build -o "$OUTPUT" "$SOURCE_FILE"
exec "$OUTPUT" "$@"
"""

RUN_RUST = """#!/bin/bash
# run-rust <source> [output] [args...]
set -e
SOURCE_FILE="$1"
if [ -z "$SOURCE_FILE" ]; then
    echo "Usage: run-rust <source-file> [output] [arguments...]"
    exit 1
fi
OUTPUT="${2:-/tmp/collabhub/bin/$(basename "${SOURCE_FILE%.*}")}"
shift 2 2>/dev/null || shift
rustc "$SOURCE_FILE" -o "$OUTPUT"
exec "$OUTPUT" "$@"
"""

COMPILE_AND_RUN = """#!/bin/bash
# compile-and-run <source> [args...]: dispatch on the file extension
set -e
SOURCE_FILE="$1"
if [ -z "$SOURCE_FILE" ]; then
    echo "Usage: compile-and-run <source-file> [arguments...]"
    echo "Supported: .c .cpp .cc .cxx .py .java .js .go .rs"
    exit 1
fi
shift
BINARY="/tmp/collabhub/bin/$(basename "${SOURCE_FILE%.*}")"
case "${SOURCE_FILE##*.}" in
    cpp|cc|cxx|C) compile-cpp "$SOURCE_FILE" "" cpp && exec "$BINARY" "$@" ;;
    c) compile-cpp "$SOURCE_FILE" "" c && exec "$BINARY" "$@" ;;
    py) exec run-python "$SOURCE_FILE" "$@" ;;
    java) exec run-java "$SOURCE_FILE" "" "$@" ;;
    js) exec run-node "$SOURCE_FILE" "$@" ;;
    go) exec run-go "$SOURCE_FILE" "" "$@" ;;
    rs) exec run-rust "$SOURCE_FILE" "" "$@" ;;
    *)
        echo "Unsupported file type: .${SOURCE_FILE##*.}"
        exit 1
        ;;
esac
"""

FIX_PERMISSIONS = """#!/bin/bash
# fix-permissions: make the workspace writable for every user in the container
set -e
find /workspace -type d -exec chmod 777 {} +
find /workspace -type f -exec chmod 666 {} +
chmod -R 777 /tmp/collabhub
"""

HELPER_SCRIPTS: dict[str, str] = {
    "compile-cpp": COMPILE_CPP,
    "run-python": RUN_PYTHON,
    "run-java": RUN_JAVA,
    "run-node": RUN_NODE,
    "run-go": RUN_GO,
    "run-rust": RUN_RUST,
    "compile-and-run": COMPILE_AND_RUN,
    "fix-permissions": FIX_PERMISSIONS,
}
