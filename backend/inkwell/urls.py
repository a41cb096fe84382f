"""
Inkwell URL Configuration
"""
import logging

from django.contrib import admin
from django.db import connection
from django.db.utils import OperationalError
from django.http import JsonResponse
from django.urls import path, include

logger = logging.getLogger('blog.health')


def api_root(request):
    """Root endpoint with API information and database reachability."""
    try:
        connection.ensure_connection()
        database = 'connected'
    except OperationalError:
        logger.exception("Database unreachable")
        database = 'unreachable'

    return JsonResponse(
        {
            'success': database == 'connected',
            'message': 'Inkwell Blog API Server Is Running!',
            'data': {
                'version': '1.0',
                'database': database,
                'endpoints': {
                    'posts': '/api/posts/',
                    'post_detail': '/api/posts/<id>/',
                    'post_stats': '/api/posts/stats/',
                    'comments': '/api/comments/',
                    'comments_by_author': '/api/comments/author/<id>/',
                },
                'admin': '/admin/',
            },
        },
        status=200 if database == 'connected' else 503,
    )


urlpatterns = [
    path('', api_root, name='api-root'),
    path('admin/', admin.site.urls),
    path('api/', include('blog.urls')),
]
