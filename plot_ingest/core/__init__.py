"""Core utilities and shared infrastructure.

- config: Configuration loading and validation
- constants: Named constants (file suffixes, limits, MIME types)
- context: Explicitly injected collaborators for one pipeline run
- deadline: Deadline / cancellation signal for input-bound stages
- exceptions: Custom exception hierarchy
- ingress: HTTP boundary helpers (upload extraction, error mapping)
"""
