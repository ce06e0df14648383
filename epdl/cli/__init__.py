"""
Command Line Layer.

This package contains the Typer application and the Rich progress display.
"""
