"""CI pipeline for the CodeBuild sample application."""

from .main import CodebuildPipeline as CodebuildPipeline
