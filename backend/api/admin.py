from django.contrib import admin
from .models import AITask, Project, Render, UploadSession, Video


@admin.register(Project)
class ProjectAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'created_at')
    search_fields = ('name',)


@admin.register(Video)
class VideoAdmin(admin.ModelAdmin):
    list_display = ('id', 'project', 'original_name', 'status', 'error', 'created_at')
    list_filter = ('status',)
    search_fields = ('id', 'original_name')


@admin.register(AITask)
class AITaskAdmin(admin.ModelAdmin):
    list_display = ('id', 'video', 'type', 'status', 'created_at', 'completed_at')
    list_filter = ('type', 'status')


@admin.register(Render)
class RenderAdmin(admin.ModelAdmin):
    list_display = ('id', 'project', 'filename', 'status', 'progress', 'created_at')
    list_filter = ('status',)
    search_fields = ('id', 'filename')


@admin.register(UploadSession)
class UploadSessionAdmin(admin.ModelAdmin):
    list_display = ('file_id', 'project', 'total_chunks', 'received_count', 'updated_at')

    @admin.display(description="Received")
    def received_count(self, obj):
        return len(obj.received or [])
