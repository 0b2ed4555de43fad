import shutil
import tempfile
from datetime import timedelta

from django.core.cache import cache
from django.test import TestCase, override_settings
from django.utils import timezone

from api.locks import EntityBusy, entity_lock
from api.models import Project, UploadSession
from api.services import get_chunk_store
from api.tasks import purge_abandoned_uploads

MEDIA_ROOT = tempfile.mkdtemp()


@override_settings(MEDIA_ROOT=MEDIA_ROOT)
class PurgeAbandonedUploadsTests(TestCase):

    @classmethod
    def tearDownClass(cls):
        shutil.rmtree(MEDIA_ROOT, ignore_errors=True)
        super().tearDownClass()

    def test_only_stale_sessions_are_purged(self):
        project = Project.objects.create(name="Drafts")
        store = get_chunk_store()
        for file_id in ("stale", "fresh"):
            UploadSession.objects.create(file_id=file_id, project=project, total_chunks=2, received=[0])
            store.write_chunk(file_id, 0, b"x", total=2)
        # auto_now would overwrite updated_at on save()
        UploadSession.objects.filter(file_id="stale").update(updated_at=timezone.now() - timedelta(hours=30))

        purged = purge_abandoned_uploads(max_age_hours=24)

        self.assertEqual(purged, 1)
        self.assertEqual(list(UploadSession.objects.values_list("file_id", flat=True)), ["fresh"])
        self.assertFalse(store.chunk_dir("stale").exists())
        self.assertEqual(store.received_indices("fresh"), {0})


class EntityLockTests(TestCase):

    def setUp(self):
        cache.clear()

    def test_second_holder_is_refused_until_release(self):
        with entity_lock("render", 1):
            with self.assertRaises(EntityBusy):
                with entity_lock("render", 1):
                    pass
            # other entities are independent
            with entity_lock("render", 2):
                pass

        with entity_lock("render", 1):
            pass
