"""Core components for agentpm.

Modules:
  settings: Explicit snapshot of environment, working directory and optional config file.
  semver: Version token classification and installed-version selection.
  locator: Search roots, name-directory spellings and manifest discovery.
  manifest: agent.json model and reader.
  interpreter: Interpreter family inference, overrides, whitelist and availability checks.
  executor: Isolated subprocess execution with output cap and deadline.
  output: Extraction of the trailing JSON object from tool stdout.
  errors: Exception hierarchy.
  logging: Logger setup and payload summaries.
"""

from .settings import Settings  # noqa: F401
