"""Default project rule template written by ``agentguard init``."""

DEFAULT_RULES_TEMPLATE = """\
# AgentGuard rules
#
#   !pattern          block
#   ?pattern          require confirmation
#   +pattern          allow
#   @protect <path>   protect a path (not enforced yet)
#   @sandbox <path>   sandbox a path (not enforced yet)
#
# Patterns are globs matched against the whole command:
# * matches any run of characters, ? matches exactly one.

# Catastrophic operations
!rm -rf /
!rm -rf /*
!rm -rf ~
!rm -rf ~/*
!mkfs*
!dd * of=/dev/*
!chmod -R 777 /

# Pipe-to-shell
!curl * | bash
!curl * | sh
!wget * | bash
!wget * | sh

# Ask first
?rm -rf *
?git push --force*
?git push -f*
?git reset --hard*
?npm publish*

# Routine cleanup
+rm -rf node_modules
+rm -rf dist
+rm -rf build
+rm -rf .next
+rm -rf __pycache__
+rm -rf .pytest_cache
"""
