from django.db import models


class Project(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    name = models.CharField(max_length=255)
    # editor timeline; {"clips": [{"videoId": ..., ...}, ...]} drives render input order
    timeline = models.JSONField(null=True, blank=True)

    def __str__(self):
        return f"Project #{self.id} ({self.name})"


class UploadSession(models.Model):
    """Bookkeeping for a chunked upload until its chunks are merged or purged."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    file_id = models.CharField(max_length=255, unique=True)
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name="upload_sessions")
    original_name = models.CharField(max_length=255, blank=True, default="")
    mime_type = models.CharField(max_length=100, blank=True, default="")
    total_chunks = models.PositiveIntegerField()
    total_size = models.BigIntegerField(default=0)
    received = models.JSONField(default=list, blank=True)

    def mark_received(self, index: int):
        if index not in self.received:
            self.received = sorted([*self.received, index])

    @property
    def is_complete(self) -> bool:
        return set(self.received) == set(range(self.total_chunks))

    def __str__(self):
        return f"UploadSession {self.file_id} ({len(self.received)}/{self.total_chunks})"


class Video(models.Model):
    UPLOADING = "UPLOADING"
    PROCESSING = "PROCESSING"
    READY = "READY"
    FAILED = "FAILED"
    STATUS = [
        (UPLOADING, "uploading"),
        (PROCESSING, "processing"),
        (READY, "ready"),
        (FAILED, "failed"),
    ]

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name="videos")
    filename = models.CharField(max_length=255)
    original_name = models.CharField(max_length=255, blank=True, default="")
    mime_type = models.CharField(max_length=100, blank=True, default="")
    size = models.BigIntegerField(default=0)
    # relative to MEDIA_ROOT
    storage_url = models.CharField(max_length=512)
    status = models.CharField(max_length=16, choices=STATUS, default=UPLOADING)
    error = models.TextField(blank=True, default="")
    duration = models.FloatField(null=True, blank=True)
    width = models.PositiveIntegerField(null=True, blank=True)
    height = models.PositiveIntegerField(null=True, blank=True)
    fps = models.FloatField(null=True, blank=True)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self):
        return f"Video #{self.id} ({self.status})"


class AITask(models.Model):
    TRANSCRIBE = "TRANSCRIBE"
    SCENE_DETECTION = "SCENE_DETECTION"
    SUBTITLES = "SUBTITLES"
    EDIT_SUGGESTIONS = "EDIT_SUGGESTIONS"
    TYPES = [
        (TRANSCRIBE, "transcription"),
        (SCENE_DETECTION, "scene detection"),
        (SUBTITLES, "subtitles"),
        (EDIT_SUGGESTIONS, "edit suggestions"),
    ]

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    STATUS = [
        (PENDING, "pending"),
        (PROCESSING, "processing"),
        (COMPLETED, "completed"),
        (FAILED, "failed"),
    ]
    TERMINAL = (COMPLETED, FAILED)

    created_at = models.DateTimeField(auto_now_add=True)
    video = models.ForeignKey(Video, on_delete=models.CASCADE, related_name="ai_tasks")
    type = models.CharField(max_length=32, choices=TYPES)
    status = models.CharField(max_length=16, choices=STATUS, default=PENDING)
    input = models.JSONField(null=True, blank=True)
    output = models.JSONField(null=True, blank=True)
    error = models.TextField(null=True, blank=True)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return f"AITask #{self.id} {self.type} ({self.status})"


class Render(models.Model):
    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    STATUS = [
        (QUEUED, "queued"),
        (PROCESSING, "processing"),
        (COMPLETED, "completed"),
        (FAILED, "failed"),
        (CANCELLED, "cancelled"),
    ]
    TERMINAL = (COMPLETED, FAILED, CANCELLED)

    created_at = models.DateTimeField(auto_now_add=True)
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name="renders")
    filename = models.CharField(max_length=255)
    settings = models.JSONField(default=dict, blank=True)
    status = models.CharField(max_length=16, choices=STATUS, default=QUEUED)
    progress = models.FloatField(default=0)
    output_url = models.CharField(max_length=512, null=True, blank=True)
    error = models.TextField(null=True, blank=True)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL

    def __str__(self):
        return f"Render #{self.id} ({self.status}, {self.progress:.0f}%)"
