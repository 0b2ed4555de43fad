from rest_framework import serializers
from .models import AITask, Project, Render, Video


class ProjectSerializer(serializers.ModelSerializer):
    class Meta:
        model = Project
        fields = ["id", "name", "timeline", "created_at"]
        read_only_fields = ["created_at"]


class VideoSerializer(serializers.ModelSerializer):
    class Meta:
        model = Video
        fields = [
            "id", "project", "filename", "original_name", "mime_type", "size", "storage_url",
            "status", "error", "duration", "width", "height", "fps", "created_at", "updated_at",
        ]
        read_only_fields = fields


class AITaskSerializer(serializers.ModelSerializer):
    class Meta:
        model = AITask
        fields = ["id", "video", "type", "status", "input", "output", "error", "created_at", "started_at", "completed_at"]
        read_only_fields = ["status", "output", "error", "created_at", "started_at", "completed_at"]


class RenderSerializer(serializers.ModelSerializer):
    class Meta:
        model = Render
        fields = [
            "id", "project", "filename", "settings", "status", "progress", "output_url", "error",
            "created_at", "started_at", "completed_at",
        ]
        read_only_fields = fields


class RenderSettingsSerializer(serializers.Serializer):
    resolution = serializers.ChoiceField(choices=["4k", "1080p", "720p"], default="1080p")
    # passed to the encoder as given; NTSC rates such as 29.97 are common
    fps = serializers.FloatField(min_value=1, max_value=120, default=30)
    format = serializers.ChoiceField(choices=["mp4", "webm", "mov"], default="mp4")
    quality = serializers.ChoiceField(choices=["low", "medium", "high"], default="high")


class AITaskRequestSerializer(serializers.Serializer):
    videoId = serializers.IntegerField()
    type = serializers.ChoiceField(choices=[t for t, _ in AITask.TYPES])
    input = serializers.JSONField(required=False, default=dict)
