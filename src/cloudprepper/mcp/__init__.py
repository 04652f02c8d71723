#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
cloudprepper MCP Server Module
Provides Model Context Protocol support, exposing question generation tools to AI assistants
"""

from .server import MCPServer, run_server

__all__ = ['MCPServer', 'run_server']
