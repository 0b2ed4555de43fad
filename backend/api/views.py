import logging
import time
from pathlib import Path

from django.conf import settings
from django.db import transaction
from django.http import FileResponse, Http404
from django.utils.text import slugify
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from mediaPipeline import IncompleteUpload, NotFound, StorageFault
from mediaPipeline.queue import AI_TASK, PROCESS_VIDEO, RENDER, RENDER_LANE, VIDEO_LANE, enqueue

from .models import AITask, Project, Render, UploadSession, Video
from .serializers import (
    AITaskRequestSerializer,
    AITaskSerializer,
    ProjectSerializer,
    RenderSerializer,
    RenderSettingsSerializer,
    VideoSerializer,
)
from .services import get_chunk_store, get_orchestrator

logger = logging.getLogger(__name__)


def _int_or_none(value):
    if value in (None, ""):
        return None
    return int(value)


class ProjectViewSet(viewsets.ModelViewSet):
    queryset = Project.objects.order_by("-id")
    serializer_class = ProjectSerializer

    @action(detail=True, methods=["post"])
    def export(self, request, pk=None):
        project = self.get_object()
        if not project.videos.exists():
            return Response({"detail": "No videos in project to export"}, status=400)

        serializer = RenderSettingsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        render_settings = dict(serializer.validated_data)

        stem = slugify(project.name) or f"project-{project.id}"
        filename = f"{stem}-{int(time.time() * 1000)}.{render_settings['format']}"
        render = Render.objects.create(
            project=project,
            filename=filename,
            settings=render_settings,
            status=Render.QUEUED,
        )
        enqueue(RENDER_LANE, RENDER, render_id=render.id)
        logger.info("Export of project %s queued as render %s", project.id, render.id)
        return Response(RenderSerializer(render).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["get"])
    def renders(self, request, pk=None):
        project = self.get_object()
        qs = project.renders.order_by("-created_at", "-id")
        return Response(RenderSerializer(qs, many=True).data)


class VideoViewSet(viewsets.ModelViewSet):
    serializer_class = VideoSerializer
    http_method_names = ["get", "post", "delete", "head", "options"]

    def get_queryset(self):
        qs = Video.objects.order_by("-created_at", "-id")
        project = self.request.query_params.get("project")
        if project:
            qs = qs.filter(project_id=project)
        return qs

    def create(self, request, *args, **kwargs):
        f = request.FILES.get("file")
        project_id = request.data.get("projectId")
        file_id = request.data.get("fileId")
        if not f or not project_id or not file_id:
            return Response({"detail": "file, projectId and fileId required"}, status=400)

        project = Project.objects.filter(id=project_id).first() if str(project_id).isdigit() else None
        if project is None:
            return Response({"detail": "project not found"}, status=404)

        try:
            chunk_index = _int_or_none(request.data.get("chunkIndex"))
            total_chunks = _int_or_none(request.data.get("totalChunks"))
            total_size = _int_or_none(request.data.get("totalSize"))
        except ValueError:
            return Response({"detail": "chunkIndex, totalChunks and totalSize must be integers"}, status=400)

        try:
            if chunk_index is not None and total_chunks is not None:
                return self._receive_chunk(project, f, file_id, chunk_index, total_chunks, total_size)
            return self._receive_file(project, f, file_id)
        except ValueError as e:
            return Response({"detail": str(e)}, status=400)
        except StorageFault as e:
            logger.error("Upload %s failed: %s", file_id, e)
            return Response({"detail": "storage unavailable, retry the upload"}, status=503)

    def _receive_file(self, project, f, file_id):
        store = get_chunk_store()
        filename = f"{int(time.time() * 1000)}-{Path(file_id).name}"
        path = store.save_file(f, filename, "videos")
        video = self._register_video(project, f, filename, f.size, store.relative(path))
        return Response(
            {"video": VideoSerializer(video).data, "completed": True},
            status=status.HTTP_201_CREATED,
        )

    def _receive_chunk(self, project, f, file_id, index, total, total_size):
        if total <= 0 or not 0 <= index < total:
            return Response({"detail": f"chunkIndex must be in [0, {total})"}, status=400)

        store = get_chunk_store()
        with transaction.atomic():
            session, _ = UploadSession.objects.select_for_update().get_or_create(
                file_id=file_id,
                defaults={
                    "project": project,
                    "total_chunks": total,
                    "total_size": total_size or 0,
                    "original_name": f.name,
                    "mime_type": getattr(f, "content_type", "") or "",
                },
            )
            if session.total_chunks != total or session.project_id != project.id:
                return Response({"detail": "upload already started with different parameters"}, status=409)

            store.write_chunk(file_id, index, f, total)
            session.mark_received(index)
            session.save(update_fields=["received", "updated_at"])

            if not session.is_complete:
                return Response({
                    "chunkIndex": index,
                    "completed": False,
                    "progress": round(len(session.received) / total * 100),
                })

            # rows are written first and the merge runs last, while the session row is
            # still locked: a rollback never loses chunks and a resent last chunk cannot merge twice
            size = session.total_size or store.pending_size(file_id)
            storage_url = store.relative(store.merged_path(file_id))
            video = self._register_video(project, f, file_id, size, storage_url, session)
            session.delete()
            try:
                store.merge(file_id, total)
            except IncompleteUpload as e:
                transaction.set_rollback(True)
                return Response({"detail": str(e), "missing": e.missing}, status=409)
            except NotFound:
                transaction.set_rollback(True)
                return Response({"detail": f"upload {file_id} was already merged"}, status=404)
        return Response(
            {"video": VideoSerializer(video).data, "completed": True},
            status=status.HTTP_201_CREATED,
        )

    def _register_video(self, project, f, filename, size, storage_url, session=None):
        video = Video.objects.create(
            project=project,
            filename=filename,
            original_name=(session.original_name if session else f.name) or f.name,
            mime_type=(session.mime_type if session else getattr(f, "content_type", "")) or "",
            size=size,
            storage_url=storage_url,
            status=Video.UPLOADING,
        )
        # a worker must never see the job before the Video row is committed
        transaction.on_commit(
            lambda: enqueue(VIDEO_LANE, PROCESS_VIDEO, video_id=video.id, storage_url=video.storage_url)
        )
        return video

    def perform_destroy(self, instance):
        get_chunk_store().delete_file(instance.storage_url)
        instance.delete()


class AITaskViewSet(viewsets.ModelViewSet):
    serializer_class = AITaskSerializer
    http_method_names = ["get", "post", "head", "options"]

    def get_queryset(self):
        qs = AITask.objects.order_by("-created_at", "-id")
        video = self.request.query_params.get("video")
        if video:
            qs = qs.filter(video_id=video)
        task_type = self.request.query_params.get("type")
        if task_type:
            qs = qs.filter(type=task_type)
        return qs

    def create(self, request, *args, **kwargs):
        req = AITaskRequestSerializer(data=request.data)
        req.is_valid(raise_exception=True)
        data = req.validated_data

        video = Video.objects.filter(id=data["videoId"]).first()
        if video is None:
            return Response({"detail": "Video not found"}, status=404)

        task_input = {"videoUrl": video.storage_url, **(data.get("input") or {})}
        task = AITask.objects.create(video=video, type=data["type"], status=AITask.PENDING, input=task_input)
        enqueue(
            VIDEO_LANE,
            AI_TASK,
            task_id=task.id,
            video_id=video.id,
            type=task.type,
            input=task_input,
        )
        return Response(AITaskSerializer(task).data, status=status.HTTP_201_CREATED)


class RenderViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Render.objects.order_by("-created_at", "-id")
    serializer_class = RenderSerializer

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        render = self.get_object()
        # only signals ffmpeg if it runs in this process; workers notice the
        # CANCELLED status on their next progress write
        cancelled_locally = get_orchestrator().cancel(render.id)
        render.refresh_from_db()
        return Response({"cancelled_locally": cancelled_locally, **RenderSerializer(render).data})

    @action(detail=True, methods=["get"])
    def download(self, request, pk=None):
        render = self.get_object()
        if render.status != Render.COMPLETED or not render.output_url:
            raise Http404("Render output not ready")

        abs_path = Path(settings.MEDIA_ROOT) / render.output_url
        if not abs_path.exists():
            raise Http404("Render output missing")
        return FileResponse(open(abs_path, "rb"), as_attachment=True, filename=abs_path.name)
