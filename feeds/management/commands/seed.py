"""Management command to seed the database with sample users, posts and feeds."""

import re
from datetime import timedelta
from random import choice, randint, sample
from typing import List

from faker import Faker
from django.core.management.base import BaseCommand
from django.db import IntegrityError, transaction
from django.utils import timezone

from feeds.blocks import POST_TYPES
from feeds.exceptions import DuplicateFeedName
from feeds.models import Comment, Like, Post, PostHashtag, Repost, User
from feeds.repos.followers_repo import FollowersRepo
from feeds.services.feed_definitions import FeedDefinitionService
from .seed_data import feed_fixtures, hashtag_pool, user_fixtures


def create_username(first_name, last_name):
    """Build a simple lowercase username from a name."""
    return re.sub(r"\W", "", (first_name + last_name).lower())


def create_email(first_name, last_name):
    """Build a deterministic email for seeded users."""
    return first_name + '.' + last_name + '@example.org'


class Command(BaseCommand):
    """Management command to seed the database with sample users/posts/feeds."""
    DEFAULT_PASSWORD = 'Password123'
    help = 'Seeds the database with sample data'

    def add_arguments(self, parser):
        parser.add_argument("--users", type=int, default=50, help="Total number of users to reach.")
        parser.add_argument("--posts-per-user", type=int, default=4, help="Posts created for every user.")
        parser.add_argument("--follows", type=int, default=5, help="Accounts each user follows.")

    def __init__(self, *args, **kwargs):
        """Set up faker instance for generating seed content."""
        super().__init__(*args, **kwargs)
        self.faker = Faker('en_GB')
        self.followers = FollowersRepo()
        self.feed_definitions = FeedDefinitionService()

    def handle(self, *args, **options):
        """Run the full seeding sequence."""
        self.create_users(options["users"])
        self.seed_follows(options["follows"])
        self.seed_posts(per_user=options["posts_per_user"])
        self.seed_engagement(max_per_post=10)
        self.seed_feed_definitions()
        self.stdout.write(self.style.SUCCESS("Seeding complete"))

    def create_users(self, user_count: int) -> None:
        for data in user_fixtures:
            self.try_create_user(data)
        attempts = 0
        while User.objects.count() < user_count and attempts < user_count * 3:
            attempts += 1
            first_name = self.faker.first_name()
            last_name = self.faker.last_name()
            self.try_create_user({
                'username': create_username(first_name, last_name),
                'email': create_email(first_name, last_name),
                'first_name': first_name,
                'last_name': last_name,
            })
        self.stdout.write(f"users: {User.objects.count()}")

    def try_create_user(self, data):
        """Create a user, skipping usernames that already exist."""
        if User.objects.filter(username=data['username']).exists():
            return None
        try:
            with transaction.atomic():
                return User.objects.create_user(
                    username=data['username'],
                    email=data['email'],
                    password=self.DEFAULT_PASSWORD,
                    first_name=data['first_name'],
                    last_name=data['last_name'],
                    bio=self.faker.sentence(nb_words=10)[:500],
                )
        except IntegrityError:
            return None

    def seed_follows(self, follow_k: int = 5) -> None:
        """Create follower edges between sample users."""
        ids = list(User.objects.values_list("id", flat=True))
        if len(ids) < 2:
            return
        k = max(0, min(follow_k, len(ids) - 1))
        with transaction.atomic():
            for follower_id in ids:
                for author_id in sample([x for x in ids if x != follower_id], k):
                    self.followers.follow(follower_id=follower_id, author_id=author_id)

    def seed_posts(self, *, per_user: int = 4) -> None:
        """Generate posts (with hashtags) spread over the last 60 days."""
        now = timezone.now()
        posts: List[Post] = []
        tags: List[PostHashtag] = []
        for author_id in User.objects.values_list("id", flat=True):
            for _ in range(per_user):
                post_tags = sample(hashtag_pool, randint(0, 3))
                text = self.faker.sentence(nb_words=12)
                post = Post(
                    author_id=author_id,
                    post_type=choice(POST_TYPES),
                    content=" ".join([text] + [f"#{tag}" for tag in post_tags]),
                    visibility=choice([Post.VISIBILITY_PUBLIC] * 6 + [Post.VISIBILITY_FOLLOWERS] * 3 + [Post.VISIBILITY_PRIVATE]),
                    created_at=now - timedelta(minutes=randint(0, 60 * 24 * 60)),
                )
                posts.append(post)
                tags.extend(PostHashtag(post_id=post.id, tag=tag) for tag in post_tags)

        with transaction.atomic():
            Post.objects.bulk_create(posts, batch_size=500)
            PostHashtag.objects.bulk_create(tags, ignore_conflicts=True, batch_size=1000)
        self.stdout.write(f"posts created: {len(posts)}; hashtags: {len(tags)}")

    def seed_engagement(self, max_per_post: int = 10) -> None:
        """Create random likes, comments and reposts for every post."""
        users = list(User.objects.values_list("id", flat=True))
        posts = list(Post.objects.values_list("id", "created_at"))
        if not users or not posts:
            return

        now = timezone.now()
        likes, comments, reposts = [], [], []
        for post_id, created_at in posts:
            span = max(1, int((now - created_at).total_seconds()))
            for user_id in sample(users, min(len(users), randint(0, max_per_post))):
                likes.append(Like(user_id=user_id, post_id=post_id, created_at=created_at + timedelta(seconds=randint(0, span))))
            for user_id in sample(users, min(len(users), randint(0, max_per_post // 2))):
                comments.append(Comment(
                    user_id=user_id,
                    post_id=post_id,
                    text=self.faker.sentence(nb_words=8),
                    created_at=created_at + timedelta(seconds=randint(0, span)),
                ))
            for user_id in sample(users, min(len(users), randint(0, max_per_post // 3))):
                reposts.append(Repost(user_id=user_id, post_id=post_id, created_at=created_at + timedelta(seconds=randint(0, span))))

        with transaction.atomic():
            Like.objects.bulk_create(likes, ignore_conflicts=True, batch_size=1000)
            Comment.objects.bulk_create(comments, batch_size=1000)
            Repost.objects.bulk_create(reposts, ignore_conflicts=True, batch_size=1000)
        self.stdout.write(f"likes: {len(likes)}; comments: {len(comments)}; reposts: {len(reposts)}")

    def seed_feed_definitions(self) -> None:
        """Give each fixture user the sample saved feeds."""
        created = 0
        owners = User.objects.filter(username__in=[data["username"] for data in user_fixtures])
        for owner in owners:
            for data in feed_fixtures:
                try:
                    self.feed_definitions.create(owner, **data)
                except DuplicateFeedName:
                    continue
                created += 1
        self.stdout.write(f"feed definitions created: {created}")
