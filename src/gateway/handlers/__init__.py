"""Webhook event handlers shipped with the gateway."""

from .welcome import DEFAULT_WELCOME_COMMENT, WelcomeCommentHandler

__all__ = ["DEFAULT_WELCOME_COMMENT", "WelcomeCommentHandler"]
