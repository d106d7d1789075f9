"""Webhook ingestion gateway for a GitHub App.

This package verifies and routes GitHub webhook deliveries and manages the
credentials needed to act on them:
- HMAC signature verification of inbound deliveries
- Event routing to registered handlers
- App assertion minting and installation token caching
- Installation-authenticated GitHub API clients
"""
