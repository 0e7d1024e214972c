"""
MCP server exposing the CPUID feature scanner.

Tools:
- list_binary_code_sections: code sections of a PE / ELF / Mach-O binary
- scan_cpu_features: CPUID features, instructions and opcodes used
- decoder_status: decoder backend details
- config_status: configuration keys and their sources
"""

import logging

from fastmcp import FastMCP

from cpuid_scan.tools.feature_tools import register_feature_tools
from cpuid_scan.utils.config import get_config

logger = logging.getLogger(__name__)

app = FastMCP("cpuid-scan")


def main():
    """Run the MCP server."""
    logging.basicConfig(
        level=getattr(logging, (get_config("CPUID_SCAN_LOG_LEVEL") or "INFO").upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    logger.info("Starting cpuid-scan MCP server...")

    register_feature_tools(app)
    logger.info("Registered CPU feature tools")

    # Run the FastMCP server (handles stdio automatically)
    app.run()


if __name__ == "__main__":
    main()
