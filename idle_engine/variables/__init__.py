"""
Template resolution module.
Resolves {{Root.Path}} placeholders in step parameters at plan-build time.
"""

from .templates import TemplateResolver, build_template_context

__all__ = ['TemplateResolver', 'build_template_context']
