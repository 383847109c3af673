import uuid

from django.test import TestCase

from feeds.models import FeedDefinition
from feeds.repos.feed_definition_repo import FeedDefinitionRepo
from feeds.tests.helpers import make_user


class FeedDefinitionRepoTestCase(TestCase):
    def setUp(self):
        self.repo = FeedDefinitionRepo()
        self.owner = make_user(username="johndoe")
        self.other = make_user(username="janedoe")
        self.music = FeedDefinition.objects.create(owner=self.owner, name="Music", is_default=True)
        self.art = FeedDefinition.objects.create(owner=self.owner, name="Art")
        FeedDefinition.objects.create(owner=self.other, name="Music", is_default=True)

    def test_list_for_owner(self):
        self.assertCountEqual(list(self.repo.list_for_owner(self.owner.id)), [self.music, self.art])

    def test_get_by_id(self):
        self.assertEqual(self.repo.get_by_id(self.art.id), self.art)
        self.assertIsNone(self.repo.get_by_id(uuid.uuid4()))

    def test_name_taken_ignores_case_and_excluded_feed(self):
        self.assertTrue(self.repo.name_taken(self.owner.id, " music "))
        self.assertFalse(self.repo.name_taken(self.owner.id, "music", exclude_id=self.music.id))
        self.assertFalse(self.repo.name_taken(self.owner.id, "Film"))

    def test_clear_default_only_touches_owner(self):
        self.assertEqual(self.repo.clear_default(self.owner.id), 1)
        self.assertFalse(FeedDefinition.objects.filter(owner=self.owner, is_default=True).exists())
        self.assertTrue(FeedDefinition.objects.filter(owner=self.other, is_default=True).exists())

    def test_clear_default_can_keep_one(self):
        self.assertEqual(self.repo.clear_default(self.owner.id, exclude_id=self.music.id), 0)
        self.music.refresh_from_db()
        self.assertTrue(self.music.is_default)
