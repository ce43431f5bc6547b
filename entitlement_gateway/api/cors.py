from fastapi import Response

# Webhooks and the portal call are reachable from browsers too; preflight is wide open
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type, stripe-signature",
}

def preflight() -> Response:
    return Response(status_code=204, headers=CORS_HEADERS)
