"""Constants and default values for graphfill."""

import re

# Default model configuration
DEFAULT_MODEL = "anthropic:claude-haiku-4-5"

# Engine defaults
DEFAULT_ENGINE_PATH = "bfg"
ENGINE_ARGS = ["jsonrpc-stdio"]
ENGINE_CLIENT_NAME = "graphfill"
DEFAULT_HANDSHAKE_TIMEOUT = 30  # seconds
DEFAULT_SHUTDOWN_TIMEOUT = 5  # seconds

# Environment variables passed through to the engine process
ENGINE_ENV_KEEP = ["PATH", "HOME", "USER", "TMPDIR", "XDG_CACHE_HOME"]

# Retrieval defaults
DEFAULT_MAX_SNIPPETS = 20
DEFAULT_MAX_DEPTH = 4
DEFAULT_IDENTIFIER_COUNT = 10

# Completion defaults
DEFAULT_PROMPT_CHARS = 8000
DEFAULT_TIMEOUT_MS = 7000
DEFAULT_COMPLETIONS = 1
DEFAULT_MAX_TOKENS = 256

# JSON-RPC method names understood by the graph-context engine
RPC_INITIALIZE = "engine/initialize"
RPC_GIT_REVISION_DID_CHANGE = "engine/gitRevision/didChange"
RPC_WORKSPACE_DID_CHANGE = "engine/workspace/didChange"
RPC_CONTEXT_FOR_IDENTIFIERS = "engine/contextForIdentifiers"
RPC_SHUTDOWN = "engine/shutdown"

# Fill-in-the-middle markers
FIM_PREFIX = "<|prefix|>"
FIM_SUFFIX = "<|suffix|>"
FIM_RESPONSE = "<|fim|>"

# Languages the graph-context engine can index
SUPPORTED_LANGUAGES = {
    "typescript",
    "typescriptreact",
    "javascript",
    "javascriptreact",
    "java",
    "go",
    "dart",
    "python",
    "zig",
}

# Language detection by extension
LANGUAGE_MAP = {
    ".py": "python",
    ".js": "javascript",
    ".jsx": "javascriptreact",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".tsx": "typescriptreact",
    ".java": "java",
    ".go": "go",
    ".dart": "dart",
    ".zig": "zig",
    ".rs": "rust",
    ".c": "c",
    ".cpp": "cpp",
    ".rb": "ruby",
}

# Keywords never sent to the engine as identifiers
LANGUAGE_KEYWORDS = {
    "python": {
        "False", "None", "True", "and", "as", "assert", "async", "await", "break",
        "class", "continue", "def", "del", "elif", "else", "except", "finally",
        "for", "from", "global", "if", "import", "in", "is", "lambda", "nonlocal",
        "not", "or", "pass", "raise", "return", "try", "while", "with", "yield",
        "self", "cls",
    },
    "javascript": {
        "await", "break", "case", "catch", "class", "const", "continue", "debugger",
        "default", "delete", "do", "else", "export", "extends", "false", "finally",
        "for", "function", "if", "import", "in", "instanceof", "let", "new", "null",
        "return", "super", "switch", "this", "throw", "true", "try", "typeof",
        "undefined", "var", "void", "while", "with", "yield", "async", "of", "from",
    },
    "typescript": {
        "any", "as", "boolean", "declare", "enum", "implements", "interface",
        "keyof", "namespace", "never", "number", "private", "protected", "public",
        "readonly", "string", "type", "unknown",
    },
    "java": {
        "abstract", "boolean", "break", "byte", "case", "catch", "char", "class",
        "continue", "default", "do", "double", "else", "enum", "extends", "false",
        "final", "finally", "float", "for", "if", "implements", "import",
        "instanceof", "int", "interface", "long", "new", "null", "package",
        "private", "protected", "public", "return", "short", "static", "super",
        "switch", "this", "throw", "throws", "true", "try", "void", "while", "var",
    },
    "go": {
        "break", "case", "chan", "const", "continue", "default", "defer", "else",
        "fallthrough", "for", "func", "go", "goto", "if", "import", "interface",
        "map", "package", "range", "return", "select", "struct", "switch", "type",
        "var", "nil", "true", "false",
    },
    "dart": {
        "async", "await", "break", "case", "catch", "class", "const", "continue",
        "else", "enum", "extends", "false", "final", "for", "if", "import", "in",
        "is", "new", "null", "return", "super", "switch", "this", "throw", "true",
        "try", "var", "void", "while", "late", "required",
    },
    "zig": {
        "const", "var", "fn", "pub", "return", "if", "else", "while", "for",
        "switch", "struct", "enum", "union", "try", "catch", "defer", "errdefer",
        "comptime", "null", "undefined", "true", "false",
    },
}
LANGUAGE_KEYWORDS["typescript"] |= LANGUAGE_KEYWORDS["javascript"]
LANGUAGE_KEYWORDS["typescriptreact"] = LANGUAGE_KEYWORDS["typescript"]
LANGUAGE_KEYWORDS["javascriptreact"] = LANGUAGE_KEYWORDS["javascript"]

# Line comment prefixes by language (default: C-style)
HASH_COMMENT_LANGUAGES = {"python", "ruby"}

# Leading noise models sometimes emit before the actual completion
BAD_COMPLETION_START = re.compile(
    r"^(?:[\U0001F300-\U0001FAFF\u2600-\u27BF]|\u200b|\+ |- |\. )+\s*"
)

# Model descriptors - Anthropic Claude models only
SUPPORTED_MODELS = {
    "anthropic:claude-haiku-4-5": {
        "provider": "anthropic",
        "name": "claude-haiku-4-5-20251001",
        "max_output_tokens": DEFAULT_MAX_TOKENS,
    },
    "anthropic:claude-sonnet-4-5": {
        "provider": "anthropic",
        "name": "claude-sonnet-4-5-20250929",
        "max_output_tokens": DEFAULT_MAX_TOKENS,
    },
}
