"""Service layer for domain logic.

Routes stay transport-only: they parse the request, call one service
function and shape the response.
"""
