"""
Core — Response Renderer

Wraps successful responses in the standard envelope:
  { "success": true, "data": ..., "meta": ... }

Error responses are already enveloped by the exception handler and
pass through untouched.

@file core/renderers.py
"""

from rest_framework.renderers import JSONRenderer


def _envelope(data):
    if isinstance(data, dict) and 'success' in data:
        return data
    if isinstance(data, dict) and 'results' in data:
        return {
            'success': True,
            'data': data['results'],
            'meta': {
                'count': data.get('count'),
                'next': data.get('next'),
                'previous': data.get('previous'),
            },
        }
    return {'success': True, 'data': data}


class StandardJSONRenderer(JSONRenderer):
    """Wraps API responses in a consistent envelope."""

    def render(self, data, accepted_media_type=None, renderer_context=None):
        response = (renderer_context or {}).get('response')
        if response is not None and (response.status_code >= 400 or response.status_code == 204):
            return super().render(data, accepted_media_type, renderer_context)
        return super().render(_envelope(data), accepted_media_type, renderer_context)
