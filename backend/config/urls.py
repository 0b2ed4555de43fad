from django.contrib import admin
from django.urls import path, include
from django.conf import settings
from django.conf.urls.static import static
from rest_framework.routers import DefaultRouter
from api.views import AITaskViewSet, ProjectViewSet, RenderViewSet, VideoViewSet

router = DefaultRouter()
router.register(r"projects", ProjectViewSet, basename="projects")
router.register(r"videos", VideoViewSet, basename="videos")
router.register(r"ai-tasks", AITaskViewSet, basename="ai-tasks")
router.register(r"renders", RenderViewSet, basename="renders")


urlpatterns = [
    path('admin/', admin.site.urls),
    path("api/", include(router.urls)),
] + static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
