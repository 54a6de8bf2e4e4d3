"""
Langoustine MCP Server.

Transport: stdio only. stdout carries the protocol, so all logging goes
to stderr.

Expected MCP Tool Return Format:
{
    "ok": bool,
    "status": str,           # outcome, e.g. "stored", "not_generalizable", "found"
    "message": str,          # human-readable summary for the host agent
    ...                      # tool-specific fields (ids, rules)
}
"""

import argparse
import logging
import signal
import sys
from typing import Annotated, Any, Dict, List, Optional

from dotenv import load_dotenv
from fastmcp import FastMCP
from mcp.types import ToolAnnotations
from pydantic import Field

from ..common.config import LangoustineConfig, load_config, parse_int
from ..common.database import Database
from ..common.embedding_service import OpenAIEmbeddingService
from ..common.errors import ConfigError
from ..common.llm_client import LLMClient
from ..intake import InstructionIntakePipeline, LLMRuleClassifier
from ..retriever import RelevantRuleRetriever

logger = logging.getLogger("langoustine.server")

SERVER_NAME = "Langoustine"

REMEMBER_DESCRIPTION = (
    "Remember a user instruction for future use. LLMs should call this tool whenever "
    "they are given a generalizable instruction by the user. The instruction will be "
    "stored in a database and can be retrieved later. "
    "The instruction is the generalizable instruction that the user is asking to be remembered. "
    "The context describes what the user was working on when they gave the instruction."
)

RELEVANT_RULES_DESCRIPTION = (
    "Find relevant development rules based on a task description using vector similarity "
    "search. Returns rules that are semantically similar to the given task description."
)

ENV_HELP = """\
Environment Variables:
  LANGOUSTINE_DB_PATH               Database file path (overridden by --db)
  LANGOUSTINE_MCP_OPENAI_API_KEY    OpenAI API key (overridden by --openai-api-key),
                                    falls back to OPENAI_API_KEY
  ANTHROPIC_API_KEY                 Anthropic API key (with --llm-provider anthropic)
  LANGOUSTINE_LLM_PROVIDER          LLM provider (overridden by --llm-provider)
  LLM_MODEL                         LLM model (overridden by --llm-model)
  LLM_MAX_RETRIES                   LLM max retries (overridden by --llm-max-retries)
  LLM_RETRY_DELAY                   LLM retry delay (overridden by --llm-retry-delay)
  OPENAI_EMBEDDING_MODEL            Embedding model (overridden by --embedding-model)
  EMBEDDING_MAX_RETRIES             Embedding max retries (overridden by --embedding-max-retries)
  EMBEDDING_RETRY_DELAY             Embedding retry delay (overridden by --embedding-retry-delay)
  LANGOUSTINE_MAX_RESULTS           Default number of rules returned
  LANGOUSTINE_SIMILARITY_THRESHOLD  Default minimum similarity
  LANGOUSTINE_CONFIG                JSON config file (default: ~/.langoustine/config.json)

Examples:
  langoustine-mcp --db /path/to/my/database.db
  langoustine-mcp --openai-api-key sk-xxx --llm-model gpt-4.1
  langoustine-mcp --embedding-model text-embedding-3-small --embedding-max-retries 5
"""


class MCPServerApp:
    """
    Main application class for the MCP server.

    Exposes the intake pipeline and the rule retriever as two MCP tools.
    """
    def __init__(
            self,
            pipeline: InstructionIntakePipeline,
            retriever: RelevantRuleRetriever,
            mcp_server_name: str = SERVER_NAME,
        ) -> None:
        """
        Args:
            pipeline (InstructionIntakePipeline): Turns instructions into stored rules.
            retriever (RelevantRuleRetriever): Finds rules relevant to a task.
            mcp_server_name (str): The name of the MCP server.
        """
        self.pipeline = pipeline
        self.retriever = retriever
        # mcp
        self.mcp = FastMCP(name=mcp_server_name)

        @self.mcp.tool(
            name="rememberDeveloperInstruction",
            title="Remember User Instruction",
            description=REMEMBER_DESCRIPTION,
            annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=False)
        )
        async def tool_remember_developer_instruction(
            instruction: Annotated[str, Field(
                description="the generalizable instruction the user asked to be remembered"
            )],
            context: Annotated[str, Field(
                description="what the user was working on when they gave the instruction"
            )],
        ) -> Dict[str, Any]:
            """
            Classify an instruction and store it as an abstract rule.

            Returns:
                Dict[str, Any]: ok/status/message plus instruction_id, rule_id,
                rule_text, category (stored) or reason (not generalizable).
            """
            result = self.pipeline.remember(instruction, context)
            logger.info("rememberDeveloperInstruction -> %s", result.status.value)
            return result.to_dict()

        @self.mcp.tool(
            name="getRelevantRules",
            title="Get Relevant Rules",
            description=RELEVANT_RULES_DESCRIPTION,
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False)
        )
        async def tool_get_relevant_rules(
            taskDescription: Annotated[str, Field(
                description="Description of the current task or context "
                            "(e.g., 'implement a new api endpoint, write unit tests for it')"
            )],
            maxResults: Annotated[float, Field(
                description="Maximum number of rules to return, a whole number from 1 to 100 (default: 5)"
            )] = 5,
            similarityThreshold: Annotated[float, Field(
                description="Minimum similarity score (-1 to 1, default: 0)"
            )] = 0.0,
        ) -> Dict[str, Any]:
            """
            Find stored rules semantically similar to a task description.

            Returns:
                Dict[str, Any]: ok/status/message plus the ranked rules.
            """
            result = self.retriever.get_relevant_rules(
                taskDescription,
                max_results=maxResults,
                similarity_threshold=similarityThreshold,
            )
            logger.info("getRelevantRules -> %s (%d rules)", result.status.value, len(result.rules))
            return result.to_dict()

    def run(self) -> None:
        """Runs the MCP server using stdio transport."""
        self.mcp.run(transport="stdio")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="langoustine-mcp",
        description="Langoustine MCP Server (stdio).",
        epilog=ENV_HELP,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--db", "--database", dest="db", default=None, metavar="PATH",
        help="Database file path (default: ./.langoustine/langoustine.db).",
    )
    parser.add_argument("--openai-api-key", default=None, metavar="KEY", help="OpenAI API key.")
    parser.add_argument(
        "--llm-provider", default=None, choices=("openai", "anthropic"),
        help="LLM provider for rule generation (default: openai).",
    )
    parser.add_argument(
        "--llm-model", default=None, metavar="MODEL",
        help="LLM model to use (default: gpt-5-mini-2025-08-07).",
    )
    parser.add_argument(
        "--llm-max-retries", default=None, metavar="N",
        help="Maximum attempts for LLM calls (default: 3).",
    )
    parser.add_argument(
        "--llm-retry-delay", default=None, metavar="MS",
        help="Retry delay for LLM calls in milliseconds (default: 1000).",
    )
    parser.add_argument(
        "--embedding-model", default=None, metavar="MODEL",
        help="Embedding model to use (default: text-embedding-3-small).",
    )
    parser.add_argument(
        "--embedding-max-retries", default=None, metavar="N",
        help="Maximum retries for embeddings (default: 3).",
    )
    parser.add_argument(
        "--embedding-retry-delay", default=None, metavar="MS",
        help="Retry delay for embeddings in milliseconds (default: 1000).",
    )
    return parser


def apply_cli_overrides(config: LangoustineConfig, args: argparse.Namespace) -> LangoustineConfig:
    """Command-line values win over environment, file and defaults."""
    if args.db:
        config.database.path = args.db
    if args.openai_api_key:
        config.llm.openai_api_key = args.openai_api_key
        config._env_sourced_keys.discard("openai_api_key")
    if args.llm_provider:
        config.llm.provider = args.llm_provider
    if args.llm_model:
        if config.llm.provider == "anthropic":
            config.llm.anthropic_model = args.llm_model
        else:
            config.llm.model = args.llm_model
    if args.embedding_model:
        config.embedding.model = args.embedding_model

    _int_args = {
        "llm_max_retries": ("LLM max retries", config.llm, "max_retries"),
        "llm_retry_delay": ("LLM retry delay", config.llm, "retry_delay_ms"),
        "embedding_max_retries": ("embedding max retries", config.embedding, "max_retries"),
        "embedding_retry_delay": ("embedding retry delay", config.embedding, "retry_delay_ms"),
    }
    for dest, (field_name, section, attr) in _int_args.items():
        val = parse_int(getattr(args, dest), field_name)
        if val is not None:
            setattr(section, attr, val)

    return config


def build_app(config: LangoustineConfig, mcp_server_name: str = SERVER_NAME) -> MCPServerApp:
    """Wire database, OpenAI embeddings and the LLM classifier into the server."""
    if not config.embedding_api_key:
        raise ConfigError(
            "OpenAI API key is required: set LANGOUSTINE_MCP_OPENAI_API_KEY or pass --openai-api-key"
        )

    database = Database(config.database.path)
    embedding_service = OpenAIEmbeddingService(
        api_key=config.embedding_api_key,
        model=config.embedding.model,
        max_retries=config.embedding.max_retries,
        retry_delay_ms=config.embedding.retry_delay_ms,
    )

    provider = config.llm.provider
    llm_client = LLMClient(
        provider=provider,
        model=config.llm.anthropic_model if provider == "anthropic" else config.llm.model,
        openai_api_key=config.llm.openai_api_key,
        anthropic_api_key=config.llm.anthropic_api_key,
    )
    if not llm_client.is_available:
        logger.warning("LLM client unavailable for provider %s; rememberDeveloperInstruction will fail", provider)

    classifier = LLMRuleClassifier(
        llm_client,
        max_attempts=config.llm.max_retries,
        retry_delay_ms=config.llm.retry_delay_ms,
    )
    pipeline = InstructionIntakePipeline(database, classifier, embedding_service)
    retriever = RelevantRuleRetriever(
        embedding_service,
        pipeline.rules,
        default_max_results=config.retriever.max_results,
        default_similarity_threshold=config.retriever.similarity_threshold,
    )
    return MCPServerApp(pipeline, retriever, mcp_server_name=mcp_server_name)


def main(argv: Optional[List[str]] = None) -> None:
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = apply_cli_overrides(load_config(), args)
        app = build_app(config)
    except ConfigError as e:
        print(f"\nError: {e}", file=sys.stderr)
        print("\nFor valid options, see:", file=sys.stderr)
        parser.print_help(sys.stderr)
        sys.exit(1)

    logger.info(
        "Starting %s MCP server (db=%s, llm provider=%s, embedding=%s)",
        SERVER_NAME, config.database.path, config.llm.provider, config.embedding.model,
    )

    def _handle_shutdown(signum, frame):
        raise SystemExit(0)
    for sig in (signal.SIGINT, getattr(signal, "SIGTERM", None)):
        if sig is not None:
            signal.signal(sig, _handle_shutdown)

    app.run()


if __name__ == "__main__":
    main()
