import django.contrib.auth.models
import django.core.validators
import django.db.models.deletion
import django.db.models.functions.text
import django.utils.timezone
import feeds.utils.uuid
import uuid
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("auth", "0012_alter_user_first_name_max_length"),
    ]

    operations = [
        migrations.CreateModel(
            name="User",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("password", models.CharField(max_length=128, verbose_name="password")),
                ("last_login", models.DateTimeField(blank=True, null=True, verbose_name="last login")),
                ("is_superuser", models.BooleanField(default=False, help_text="Designates that this user has all permissions without explicitly assigning them.", verbose_name="superuser status")),
                ("username", models.CharField(max_length=30, unique=True, validators=[django.core.validators.RegexValidator(message="Username must consist of at least three alphanumericals", regex="^\\w{3,}$")])),
                ("first_name", models.CharField(blank=True, max_length=150, verbose_name="first name")),
                ("last_name", models.CharField(blank=True, max_length=150, verbose_name="last name")),
                ("email", models.EmailField(blank=True, max_length=254, verbose_name="email address")),
                ("is_staff", models.BooleanField(default=False, help_text="Designates whether the user can log into this admin site.", verbose_name="staff status")),
                ("is_active", models.BooleanField(default=True, help_text="Designates whether this user should be treated as active. Unselect this instead of deleting accounts.", verbose_name="active")),
                ("date_joined", models.DateTimeField(default=django.utils.timezone.now, verbose_name="date joined")),
                ("bio", models.TextField(blank=True, help_text="short user bio shown on profile", max_length=500, validators=[django.core.validators.MaxLengthValidator(500)])),
                ("groups", models.ManyToManyField(blank=True, help_text="The groups this user belongs to. A user will get all permissions granted to each of their groups.", related_name="user_set", related_query_name="user", to="auth.group", verbose_name="groups")),
                ("user_permissions", models.ManyToManyField(blank=True, help_text="Specific permissions for this user.", related_name="user_set", related_query_name="user", to="auth.permission", verbose_name="user permissions")),
            ],
            options={
                "ordering": ["username"],
            },
            managers=[
                ("objects", django.contrib.auth.models.UserManager()),
            ],
        ),
        migrations.CreateModel(
            name="Post",
            fields=[
                ("id", models.UUIDField(default=feeds.utils.uuid.uuid7_or_4, editable=False, primary_key=True, serialize=False)),
                ("post_type", models.CharField(choices=[("text", "Text"), ("image", "Image"), ("gallery", "Gallery"), ("video", "Video"), ("song", "Song"), ("link", "Link")], default="text", max_length=20)),
                ("content", models.TextField(blank=True, default="", max_length=5000)),
                ("visibility", models.CharField(choices=[("public", "Public"), ("followers", "Followers only"), ("private", "Only me")], default="public", max_length=20)),
                ("moderation_status", models.CharField(choices=[("pending", "Pending"), ("approved", "Approved"), ("rejected", "Rejected")], default="approved", max_length=20)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("deleted_at", models.DateTimeField(blank=True, null=True)),
                ("author", models.ForeignKey(db_column="author_id", on_delete=django.db.models.deletion.CASCADE, related_name="posts", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "db_table": "post",
                "indexes": [
                    models.Index(fields=["created_at", "id"], name="post_created_e4f5a1_idx"),
                    models.Index(fields=["author"], name="post_author__0c6b3e_idx"),
                    models.Index(fields=["post_type"], name="post_post_ty_7d2c90_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PostHashtag",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("tag", models.CharField(max_length=100)),
                ("post", models.ForeignKey(db_column="post_id", on_delete=django.db.models.deletion.CASCADE, related_name="hashtags", to="feeds.post")),
            ],
            options={
                "db_table": "post_hashtag",
                "indexes": [models.Index(fields=["tag"], name="post_hashta_tag_5b1d2e_idx")],
                "constraints": [models.UniqueConstraint(fields=("post", "tag"), name="uniq_post_hashtag_post_tag")],
            },
        ),
        migrations.CreateModel(
            name="Follower",
            fields=[
                ("id", models.UUIDField(default=feeds.utils.uuid.uuid7_or_4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("author", models.ForeignKey(db_column="author_id", on_delete=django.db.models.deletion.CASCADE, related_name="followers", to=settings.AUTH_USER_MODEL)),
                ("follower", models.ForeignKey(db_column="follower_id", on_delete=django.db.models.deletion.CASCADE, related_name="following", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "db_table": "followers",
                "indexes": [
                    models.Index(fields=["follower"], name="followers_followe_3a9c1d_idx"),
                    models.Index(fields=["author"], name="followers_author__8e2f4b_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("follower", "author"), name="uniq_followers_follower_author"),
                    models.CheckConstraint(condition=models.Q(("follower", models.F("author")), _negated=True), name="chk_followers_not_self"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Like",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("post", models.ForeignKey(db_column="post_id", on_delete=django.db.models.deletion.CASCADE, related_name="likes", to="feeds.post")),
                ("user", models.ForeignKey(db_column="user_id", on_delete=django.db.models.deletion.CASCADE, related_name="likes", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "db_table": "like",
                "indexes": [models.Index(fields=["post", "created_at"], name="like_post_id_1f7e3a_idx")],
                "constraints": [models.UniqueConstraint(fields=("user", "post"), name="uniq_like_user_post")],
            },
        ),
        migrations.CreateModel(
            name="Comment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("text", models.TextField(max_length=2000)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("post", models.ForeignKey(db_column="post_id", on_delete=django.db.models.deletion.CASCADE, related_name="comments", to="feeds.post")),
                ("user", models.ForeignKey(db_column="user_id", on_delete=django.db.models.deletion.CASCADE, related_name="comments", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "db_table": "comment",
                "indexes": [models.Index(fields=["post", "created_at"], name="comment_post_id_9b4c6d_idx")],
            },
        ),
        migrations.CreateModel(
            name="Repost",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("post", models.ForeignKey(db_column="post_id", on_delete=django.db.models.deletion.CASCADE, related_name="reposts", to="feeds.post")),
                ("user", models.ForeignKey(db_column="user_id", on_delete=django.db.models.deletion.CASCADE, related_name="reposts", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "db_table": "repost",
                "indexes": [models.Index(fields=["post", "created_at"], name="repost_post_id_4d8a2c_idx")],
                "constraints": [models.UniqueConstraint(fields=("user", "post"), name="uniq_repost_user_post")],
            },
        ),
        migrations.CreateModel(
            name="FeedDefinition",
            fields=[
                ("id", models.UUIDField(default=feeds.utils.uuid.uuid7_or_4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=100)),
                ("description", models.TextField(blank=True, default="")),
                ("blocks", models.JSONField(blank=True, default=list)),
                ("is_default", models.BooleanField(default=False)),
                ("revision", models.PositiveIntegerField(default=1)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("owner", models.ForeignKey(db_column="owner_id", on_delete=django.db.models.deletion.CASCADE, related_name="feed_definitions", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "db_table": "feed_definition",
                "ordering": ["created_at", "id"],
                "constraints": [
                    models.UniqueConstraint(django.db.models.functions.text.Lower("name"), models.F("owner"), name="uniq_feed_definition_owner_name"),
                    models.UniqueConstraint(condition=models.Q(("is_default", True)), fields=("owner",), name="uniq_feed_definition_owner_default"),
                ],
            },
        ),
    ]
