#!/usr/bin/env python3
"""
am-i.exposed MCP Server
Thin wrapper that exposes the am-i.exposed API to MCP clients.

This server talks to the am-i.exposed HTTP API, so an assistant can score
the privacy of a transaction or address, or check a destination before
sending, through natural conversation.
"""
import asyncio
import json
import logging
import os
import sys

import httpx
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Resource, TextContent, Tool
from pydantic import AnyUrl

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stderr
)
logger = logging.getLogger("amiexposed-mcp")

# Configuration
API_BASE_URL = os.environ.get("AMIEXPOSED_API_URL", "http://localhost:3000/api/v1")
API_TIMEOUT = 120  # seconds

NETWORK_PROPERTY = {
    "type": "string",
    "enum": ["mainnet", "testnet4", "signet"],
    "description": "Bitcoin network (default: mainnet)",
    "default": "mainnet"
}

SEVERITY_ICONS = {
    "critical": "[!!]",
    "high": "[! ]",
    "medium": "[~ ]",
    "low": "[. ]",
    "good": "[+ ]",
}

# Create MCP server
server = Server("amiexposed")


async def api_call(endpoint: str, params: dict = None) -> dict:
    """Make a call to the am-i.exposed API."""
    url = f"{API_BASE_URL}{endpoint}"

    async with httpx.AsyncClient(timeout=API_TIMEOUT) as client:
        try:
            if params:
                response = await client.get(url, params=params)
            else:
                response = await client.get(url)

            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"API error: {e}")
            detail = _error_detail(e.response)
            return {"error": detail or str(e), "status_code": e.response.status_code}
        except httpx.ConnectError:
            return {"error": "Cannot connect to am-i.exposed API. Is the server running?"}
        except Exception as e:
            logger.error(f"Request error: {e}")
            return {"error": str(e)}


async def api_post(endpoint: str, data: dict) -> dict:
    """Make a POST call to the am-i.exposed API."""
    url = f"{API_BASE_URL}{endpoint}"

    async with httpx.AsyncClient(timeout=API_TIMEOUT) as client:
        try:
            response = await client.post(url, json=data)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            return {"error": _error_detail(e.response) or str(e), "status_code": e.response.status_code}
        except Exception as e:
            return {"error": str(e)}


def _error_detail(response: httpx.Response):
    try:
        return response.json().get("detail")
    except (ValueError, AttributeError):
        return None


def format_report(analysis: dict) -> str:
    """Format an analysis result as a plain-text privacy report."""
    result = analysis.get("result") or {}
    findings = result.get("findings", [])

    lines = []
    lines.append("=" * 80)
    lines.append("PRIVACY REPORT")
    lines.append(f"{analysis.get('input_type', 'query')}: {analysis.get('query', 'N/A')}")
    lines.append(f"Score: {result.get('score', 'N/A')}/100   Grade: {result.get('grade', 'N/A')}")
    lines.append("=" * 80)
    lines.append("")

    if not findings:
        lines.append("No findings.")

    for finding in findings:
        icon = SEVERITY_ICONS.get(finding.get("severity"), "[  ]")
        impact = finding.get("score_impact", 0)
        lines.append(f"{icon} {finding.get('title')} ({impact:+d})")
        lines.append(f"     {finding.get('recommendation', '')}")

    breakdown = analysis.get("tx_breakdown") or []
    if breakdown:
        lines.append("")
        lines.append("-" * 80)
        lines.append(f"Per-transaction breakdown ({len(breakdown)} transactions)")
        for entry in breakdown[:20]:
            lines.append(f"  {entry['txid'][:16]}...  {entry['role']:<8}  {entry['score']:>3}  {entry['grade']}")
        if len(breakdown) > 20:
            lines.append(f"  ... and {len(breakdown) - 20} more")

    lines.append("=" * 80)
    return "\n".join(lines)


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List all available am-i.exposed tools."""
    return [
        Tool(
            name="detect_input",
            description="Classify text as a Bitcoin transaction ID, address, or invalid input. Accepts explorer URLs and strips invisible characters.",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "Transaction ID, address or explorer URL"
                    },
                    "network": NETWORK_PROPERTY
                },
                "required": ["query"]
            }
        ),
        Tool(
            name="analyze",
            description="Score the privacy of a Bitcoin transaction or address (0-100, grade A+ to F) with explained findings: address reuse, change detection, CoinJoin, wallet fingerprints and more.",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "Transaction ID (64 hex characters), address or explorer URL"
                    },
                    "network": NETWORK_PROPERTY,
                    "format": {
                        "type": "string",
                        "enum": ["report", "json"],
                        "description": "Plain-text report or raw JSON (default: report)",
                        "default": "report"
                    }
                },
                "required": ["query"]
            }
        ),
        Tool(
            name="check_destination",
            description="Pre-send check of a destination address. Returns a risk level (LOW, MEDIUM, HIGH, CRITICAL), including sanctions list matches and address reuse.",
            inputSchema={
                "type": "object",
                "properties": {
                    "address": {
                        "type": "string",
                        "description": "Bitcoin address you are about to send to"
                    },
                    "network": NETWORK_PROPERTY
                },
                "required": ["address"]
            }
        ),
        Tool(
            name="cluster",
            description="First-degree cluster of an address: every address linked to it by common-input ownership, plus change followed one hop. CoinJoin transactions are skipped.",
            inputSchema={
                "type": "object",
                "properties": {
                    "address": {
                        "type": "string",
                        "description": "Bitcoin address to cluster"
                    },
                    "network": NETWORK_PROPERTY
                },
                "required": ["address"]
            }
        ),
        Tool(
            name="check_ofac",
            description="Screen one or more addresses against the local OFAC sanctions list. No network lookups are made.",
            inputSchema={
                "type": "object",
                "properties": {
                    "addresses": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Addresses to screen"
                    }
                },
                "required": ["addresses"]
            }
        ),
        Tool(
            name="health_check",
            description="Check the am-i.exposed service and whether its block explorer backend is reachable.",
            inputSchema={
                "type": "object",
                "properties": {}
            }
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Handle tool calls."""
    try:
        output = None

        if name == "detect_input":
            result = await api_call("/detect", {
                "q": arguments.get("query"),
                "network": arguments.get("network", "mainnet")
            })

        elif name == "analyze":
            result = await api_call("/analyze", {
                "q": arguments.get("query"),
                "network": arguments.get("network", "mainnet")
            })
            if arguments.get("format", "report") == "report" and "error" not in result:
                output = format_report(result)

        elif name == "check_destination":
            address = arguments.get("address")
            result = await api_call(f"/check/{address}", {
                "network": arguments.get("network", "mainnet")
            })

        elif name == "cluster":
            address = arguments.get("address")
            result = await api_call(f"/cluster/{address}", {
                "network": arguments.get("network", "mainnet")
            })

        elif name == "check_ofac":
            result = await api_post("/ofac", {"addresses": arguments.get("addresses", [])})

        elif name == "health_check":
            result = await api_call("/health")

        else:
            result = {"error": f"Unknown tool: {name}"}

        # Format output
        if output is None:
            output = json.dumps(result, indent=2, default=str)

        return [TextContent(type="text", text=output)]

    except Exception as e:
        logger.error(f"Tool error: {e}")
        return [TextContent(type="text", text=f"Error: {str(e)}")]


# ============== Resources ==============

@server.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    return [
        Resource(
            uri=AnyUrl("amiexposed://health"),
            name="System Health",
            description="Service health and explorer backend status",
            mimeType="application/json"
        )
    ]


@server.read_resource()
async def read_resource(uri: AnyUrl) -> str:
    """Read a resource."""
    if str(uri) == "amiexposed://health":
        result = await api_call("/health")
        return json.dumps(result, indent=2)

    return json.dumps({"error": "Unknown resource"})


async def main():
    """Main entry point."""
    logger.info("Starting am-i.exposed MCP Server...")

    async with stdio_server() as (read_stream, write_stream):
        await server.run(
            read_stream,
            write_stream,
            server.create_initialization_options()
        )


def cli():
    asyncio.run(main())


if __name__ == "__main__":
    cli()
