"""Entry point for running agentguard as a module: python -m agentguard"""

from agentguard.cli.commands import app

if __name__ == "__main__":
    app()
