#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
cloudprepper MCP Server Main Module
Implemented using official MCP SDK, exposing question generation, batch recovery
and domain coverage tools to AI assistants
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

# Official MCP SDK
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import (
    Tool,
    Resource,
    TextContent,
    ResourceTemplate,
)

# cloudprepper core modules
from ..core.backend import HttpJobBackend, JobBackend
from ..core.coverage import analyze, profile_for, format_coverage_report
from ..core.errors import BatchTimeout, MalformedResponse
from ..core.models import BatchRequest, GeneratedQuestion
from ..core.orchestrator import BatchOrchestrator
from ..storage.question_writer import QuestionFileManager
from ..storage.sql_format import render_statements
from ..utils.config import Config
from ..utils.constants import (
    CERTIFICATION_TYPES, COGNITIVE_LEVELS, SKILL_LEVELS, OUTPUT_FORMATS, DOMAIN_WEIGHTS,
    DOMAIN_SUBDOMAINS, BATCH_MAX_COUNT, SINGLE_MAX_COUNT, POLL_INTERVAL_RANGE,
    MAX_WAIT_TIME_RANGE, COVERAGE_MIN_TOTAL_TARGET
)
from ..utils.helpers import setup_logging

RESOURCE_PREFIX = "cloudprepper://domains"

ALL_DOMAINS = sorted({name for profile in DOMAIN_WEIGHTS.values() for name, _ in profile})


def _level_schema(values, label: str) -> Dict[str, Any]:
    """Accept one value or a list of values"""
    return {
        "oneOf": [
            {"type": "string", "enum": list(values)},
            {"type": "array", "items": {"type": "string", "enum": list(values)}},
        ],
        "description": f"{label} - a single value or an array for mixed batches",
    }


def _bounded_number(args: Dict[str, Any], key: str, default: float, bounds: Tuple[int, int]) -> float:
    """Read an optional numeric argument and check its range"""
    value = args.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number, got {value!r}")
    low, high = bounds
    if not low <= value <= high:
        raise ValueError(f"{key} must be between {low} and {high}, got {value}")
    return value


class MCPServer:
    """
    cloudprepper MCP Server

    Using official MCP SDK to expose batch question generation, batch status
    recovery, single question generation and coverage analysis
    """

    def __init__(self, config: Optional[Config] = None, backend: Optional[JobBackend] = None,
                 orchestrator: Optional[BatchOrchestrator] = None,
                 file_manager: Optional[QuestionFileManager] = None):
        """
        Initialize MCP Server

        Args:
            config: cloudprepper configuration object, uses default configuration when None
            backend: Job backend, HTTP backend from config when None
            orchestrator: Batch orchestrator, built over the backend when None
            file_manager: Question file manager, uses the configured questions directory when None
        """
        self.config = config or Config()
        self.logger = logging.getLogger('cloudprepper.mcp_server')

        self.backend = backend or HttpJobBackend(self.config.backend)
        self.orchestrator = orchestrator or BatchOrchestrator(self.backend, self.config.batch)
        self.file_manager = file_manager or QuestionFileManager(self.config.get_questions_dir())

        # Create MCP Server instance
        self.server = Server("cloudprepper")

        # Register handlers
        self._register_handlers()

        self.logger.info(
            f"cloudprepper MCP Server initialization completed (backend: {self.config.backend.base_url})"
        )

    def _register_handlers(self):
        """Register all MCP handlers"""

        @self.server.list_tools()
        async def list_tools() -> List[Tool]:
            """Return available tools list"""
            return self._get_tools()

        @self.server.call_tool()
        async def call_tool(name: str, arguments: Dict[str, Any]) -> List[TextContent]:
            """Handle tool calls"""
            return await self._handle_tool_call(name, arguments)

        @self.server.list_resources()
        async def list_resources() -> List[Resource]:
            """Return available resources list"""
            return self._get_resources()

        @self.server.read_resource()
        async def read_resource(uri: str) -> str:
            """Read resource content"""
            return await self._handle_resource_read(uri)

        @self.server.list_resource_templates()
        async def list_resource_templates() -> List[ResourceTemplate]:
            """Return resource templates list"""
            return [
                ResourceTemplate(
                    uriTemplate=f"{RESOURCE_PREFIX}/{{certification}}",
                    name="Domain Profile",
                    description="Exam domain weights and subdomains of one certification"
                )
            ]

    def _get_tools(self) -> List[Tool]:
        """Get tools list"""
        request_properties = {
            "certification_type": {
                "type": "string",
                "enum": list(CERTIFICATION_TYPES),
                "description": "Target certification (CV0-004 or SAA-C03)"
            },
            "domain_name": {
                "type": "string",
                "enum": ALL_DOMAINS,
                "description": "Exam domain to focus on (optional)"
            },
            "cognitive_level": _level_schema(COGNITIVE_LEVELS, "Bloom's taxonomy level(s)"),
            "skill_level": _level_schema(SKILL_LEVELS, "Target skill level(s)"),
            "scenario_context": {
                "type": "string",
                "description": "Optional scenario context or specific requirements"
            },
            "output_format": {
                "type": "string",
                "enum": list(OUTPUT_FORMATS),
                "description": 'Output format: "json" (default) or "sql" for SQL INSERT statements'
            },
        }

        return [
            Tool(
                name="cloudprepper_generate_batch",
                description="""Generate a batch of certification exam questions and save them to a file.

The batch is submitted to the question backend, polled until it completes,
and the questions are written as JSON or SQL INSERT statements.

If polling times out, the response carries the batch_id; call
cloudprepper_check_batch_status with it later to collect the results.""",
                inputSchema={
                    "type": "object",
                    "properties": {
                        **request_properties,
                        "count": {
                            "type": "number",
                            "description": f"Number of questions to generate (1-{BATCH_MAX_COUNT}, default: 1)",
                            "minimum": 1,
                            "maximum": BATCH_MAX_COUNT
                        },
                    },
                    "required": ["certification_type"]
                }
            ),
            Tool(
                name="cloudprepper_check_batch_status",
                description="""Check a previously submitted batch job and retrieve its results when complete.

Use after a batch timed out or the server restarted. Polls until the batch
is complete, then saves the questions to a file.""",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "batch_id": {
                            "type": "string",
                            "description": "The batch_id from a previous batch submission"
                        },
                        "output_format": request_properties["output_format"],
                        "poll_interval": {
                            "type": "number",
                            "description": "Polling interval in seconds (5-300, default: 30)",
                            "minimum": POLL_INTERVAL_RANGE[0],
                            "maximum": POLL_INTERVAL_RANGE[1]
                        },
                        "max_wait_time": {
                            "type": "number",
                            "description": "Maximum time to wait for completion in seconds (10-7200, default: 3600)",
                            "minimum": MAX_WAIT_TIME_RANGE[0],
                            "maximum": MAX_WAIT_TIME_RANGE[1]
                        },
                    },
                    "required": ["batch_id"]
                }
            ),
            Tool(
                name="cloudprepper_generate_question",
                description="""Generate up to 10 questions synchronously and return them inline.

Nothing is written to disk; use cloudprepper_generate_batch for larger sets.""",
                inputSchema={
                    "type": "object",
                    "properties": {
                        **request_properties,
                        "count": {
                            "type": "number",
                            "description": f"Number of questions to generate (1-{SINGLE_MAX_COUNT}, default: 1)",
                            "minimum": 1,
                            "maximum": SINGLE_MAX_COUNT
                        },
                    },
                    "required": ["certification_type"]
                }
            ),
            Tool(
                name="cloudprepper_check_coverage",
                description="""Analyze question coverage across exam domains.

Compares per-domain question counts with targets derived from the official
domain weights and lists gaps and overrepresented domains. Counts are taken
from domain_counts when given, otherwise fetched from the backend.""",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "certification_type": request_properties["certification_type"],
                        "target_total": {
                            "type": "number",
                            "description": f"Target total question count (minimum {COVERAGE_MIN_TOTAL_TARGET}, "
                                           f"default: {self.config.coverage.default_total_target})",
                            "minimum": COVERAGE_MIN_TOTAL_TARGET
                        },
                        "domain_counts": {
                            "type": "object",
                            "additionalProperties": {"type": "integer", "minimum": 0},
                            "description": "Observed question count per domain name (optional)"
                        },
                    },
                    "required": ["certification_type"]
                }
            ),
            Tool(
                name="cloudprepper_load_batch_file",
                description="""Read a saved batch file (JSON or SQL) and summarize its questions.

Relative paths are resolved against the questions directory.""",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "file_path": {
                            "type": "string",
                            "description": "Path of a batch file written by cloudprepper_generate_batch"
                        },
                        "include_questions": {
                            "type": "boolean",
                            "description": "Return the full question records (default: false)",
                            "default": False
                        },
                    },
                    "required": ["file_path"]
                }
            ),
        ]

    def _get_resources(self) -> List[Resource]:
        """Get resource list"""
        resources = [
            Resource(
                uri=RESOURCE_PREFIX,
                name="Domain Profiles",
                description="Domain weights of every supported certification",
                mimeType="application/json"
            ),
        ]
        for certification in CERTIFICATION_TYPES:
            resources.append(Resource(
                uri=f"{RESOURCE_PREFIX}/{certification}",
                name=f"{certification} Domain Profile",
                description=f"Domain weights and subdomains of {certification}",
                mimeType="application/json"
            ))
        return resources

    async def _handle_tool_call(self, name: str, arguments: Dict[str, Any]) -> List[TextContent]:
        """Handle tool calls"""
        try:
            self.logger.debug(f"Tool call: {name}, args: {arguments}")

            handlers = {
                "cloudprepper_generate_batch": self._tool_generate_batch,
                "cloudprepper_check_batch_status": self._tool_check_batch_status,
                "cloudprepper_generate_question": self._tool_generate_question,
                "cloudprepper_check_coverage": self._tool_check_coverage,
                "cloudprepper_load_batch_file": self._tool_load_batch_file,
            }

            handler = handlers.get(name)
            if handler:
                result = await handler(arguments or {})
            else:
                result = {"success": False, "error": f"Unknown tool: {name}"}

            return [TextContent(type="text", text=json.dumps(result, ensure_ascii=False, indent=2))]

        except BatchTimeout as e:
            self.logger.warning(f"Tool call timed out: {name}, batch_id: {e.job_id}")
            result = {
                "success": False,
                "error": str(e),
                "batch_id": e.job_id,
                "hint": f"Call cloudprepper_check_batch_status with batch_id '{e.job_id}' to resume",
            }
            return [TextContent(type="text", text=json.dumps(result, ensure_ascii=False, indent=2))]

        except Exception as e:
            self.logger.error(f"Tool call failed: {name}, error: {e}")
            return [TextContent(
                type="text",
                text=json.dumps({"success": False, "error": str(e)}, ensure_ascii=False)
            )]

    # ==================== Batch Tools ====================

    def _summarize(self, questions: List[GeneratedQuestion], file_path, job_id: Optional[str],
                   retrieved_from: Optional[str], output_format: str) -> Dict[str, Any]:
        """Response body for a persisted batch"""
        return {
            "success": True,
            "batch_id": job_id,
            "count": len(questions),
            "file_path": str(file_path),
            "output_format": output_format,
            "retrieved_from": retrieved_from,
            "message": f"Generated {len(questions)} question(s), saved to {file_path}",
        }

    async def _tool_generate_batch(self, args: Dict[str, Any]) -> Dict[str, Any]:
        """Submit a batch, wait for it and save the questions"""
        request = BatchRequest.from_args(args, max_count=BATCH_MAX_COUNT)
        outcome = await self.orchestrator.run(request)

        file_path = self.file_manager.persist(outcome.questions, request=request, job_id=outcome.job_id)
        result = self._summarize(outcome.questions, file_path, outcome.job_id, outcome.retrieved_from,
                                 request.output_format)
        result["metadata"] = request.metadata()
        return result

    async def _tool_check_batch_status(self, args: Dict[str, Any]) -> Dict[str, Any]:
        """Resume an earlier batch and save its questions"""
        batch_id = args.get("batch_id")
        if not batch_id or not isinstance(batch_id, str):
            raise ValueError("batch_id is required")
        output_format = args.get("output_format") or "json"
        if output_format not in OUTPUT_FORMATS:
            raise ValueError(f"output_format must be one of {', '.join(OUTPUT_FORMATS)}")
        poll_interval = _bounded_number(args, "poll_interval", self.config.batch.poll_interval,
                                        POLL_INTERVAL_RANGE)
        max_wait = _bounded_number(args, "max_wait_time", self.config.batch.max_wait_time,
                                   MAX_WAIT_TIME_RANGE)

        handle = self.orchestrator.resume(batch_id)
        questions = await self.orchestrator.await_completion(handle, poll_interval, max_wait)

        file_path = self.file_manager.persist(questions, job_id=batch_id, output_format=output_format)
        result = self._summarize(questions, file_path, batch_id, handle.retrieved_from, output_format)
        result["status"] = handle.status.value
        return result

    async def _tool_generate_question(self, args: Dict[str, Any]) -> Dict[str, Any]:
        """Generate questions inline"""
        request = BatchRequest.from_args(args, max_count=SINGLE_MAX_COUNT)
        questions = await self.orchestrator.generate_now(request)

        result: Dict[str, Any] = {
            "success": True,
            "count": len(questions),
            "output_format": request.output_format,
            "metadata": request.metadata(),
        }
        if request.output_format == "sql":
            result["sql"] = render_statements(questions, request.metadata())
        else:
            result["questions"] = [q.to_dict() for q in questions]
        return result

    # ==================== Coverage Tools ====================

    async def _fetch_domain_counts(self, certification_type: str) -> Dict[str, int]:
        """Observed per-domain counts from the backend"""
        response = await self.backend.domain_counts(certification_type)
        body = response.body
        if not response.ok:
            detail = body.get("error") if isinstance(body, dict) else None
            raise RuntimeError(
                f"Domain count request failed with status {response.http_status}: {detail or 'no detail'}"
            )
        if isinstance(body, dict):
            body = body.get("domain_counts", body.get("domains"))

        if isinstance(body, dict):
            return {str(name): count for name, count in body.items()}
        if isinstance(body, list):
            counts: Dict[str, int] = {}
            for row in body:
                if not isinstance(row, dict) or "domain_name" not in row:
                    raise MalformedResponse("Domain count row lacks domain_name", row)
                counts[row["domain_name"]] = int(row.get("count", row.get("current_count", 0)))
            return counts
        raise MalformedResponse("Invalid domain count response", response.body)

    async def _tool_check_coverage(self, args: Dict[str, Any]) -> Dict[str, Any]:
        """Domain coverage analysis"""
        certification_type = args.get("certification_type")
        if not certification_type:
            raise ValueError("certification_type is required")
        profile = profile_for(certification_type)

        target_total = args.get("target_total", self.config.coverage.default_total_target)
        if isinstance(target_total, float) and target_total.is_integer():
            target_total = int(target_total)
        if isinstance(target_total, int) and target_total < COVERAGE_MIN_TOTAL_TARGET:
            raise ValueError(f"target_total must be at least {COVERAGE_MIN_TOTAL_TARGET}, got {target_total}")

        counts = args.get("domain_counts")
        source = "arguments"
        if counts is None:
            counts = await self._fetch_domain_counts(certification_type)
            source = "backend"

        known = {target.name for target in profile}
        unknown = sorted(name for name in counts if name not in known)
        if unknown:
            self.logger.warning(f"Ignoring counts for domains outside {certification_type}: {unknown}")

        report = analyze(
            profile, target_total, {name: count for name, count in counts.items() if name in known},
            certification_type=certification_type,
            under=self.config.coverage.under_threshold,
            over=self.config.coverage.over_threshold,
        )

        return {
            "success": True,
            "counts_source": source,
            "ignored_domains": unknown,
            "coverage": report.to_dict(),
            "report": format_coverage_report(report),
        }

    # ==================== File Tools ====================

    async def _tool_load_batch_file(self, args: Dict[str, Any]) -> Dict[str, Any]:
        """Summarize a saved batch file"""
        file_path = args.get("file_path")
        if not file_path:
            raise ValueError("file_path is required")

        questions, metadata = self.file_manager.load_batch_file(file_path)

        by_domain: Dict[str, int] = {}
        for question in questions:
            by_domain[question.domain] = by_domain.get(question.domain, 0) + 1

        result: Dict[str, Any] = {
            "success": True,
            "file_path": str(file_path),
            "count": len(questions),
            "multiple_answer_count": sum(1 for q in questions if q.multiple_answers),
            "domains": by_domain,
            "metadata": metadata,
        }
        if args.get("include_questions"):
            result["questions"] = [q.to_dict() for q in questions]
        return result

    # ==================== Resource Handling ====================

    async def _handle_resource_read(self, uri) -> str:
        """Handle resource reading"""
        try:
            # Convert AnyUrl to string if needed
            uri_str = str(uri)

            if uri_str == RESOURCE_PREFIX:
                return json.dumps(
                    {cert: self._domain_profile(cert) for cert in CERTIFICATION_TYPES},
                    ensure_ascii=False, indent=2
                )
            elif uri_str.startswith(f"{RESOURCE_PREFIX}/"):
                certification = uri_str.split("/")[-1]
                return json.dumps(self._domain_profile(certification), ensure_ascii=False, indent=2)
            else:
                return json.dumps({"error": f"Unknown resource: {uri_str}"})

        except ValueError as e:
            return json.dumps({"error": str(e)})

    def _domain_profile(self, certification_type: str) -> List[Dict[str, Any]]:
        return [
            {
                "domain_name": target.name,
                "weight": target.weight,
                "subdomains": DOMAIN_SUBDOMAINS.get(target.name, []),
            }
            for target in profile_for(certification_type)
        ]

    async def run(self):
        """Run MCP Server"""
        self.logger.info("Starting cloudprepper MCP Server...")

        try:
            async with stdio_server() as (read_stream, write_stream):
                await self.server.run(
                    read_stream,
                    write_stream,
                    self.server.create_initialization_options()
                )
        finally:
            await self.backend.aclose()


async def run_server(config: Optional[Config] = None):
    """Start MCP Server"""
    config = config or Config()
    setup_logging(verbose=config.logging.verbose, log_dir=config.get_log_dir())

    server = MCPServer(config)
    await server.run()


def main():
    """MCP server entry point"""
    asyncio.run(run_server())


if __name__ == "__main__":
    main()
