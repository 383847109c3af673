from django.db.models.signals import post_save
from django.dispatch import receiver

from feeds.models import Post, PostHashtag


@receiver(post_save, sender=Post)
def index_post_hashtags(sender, instance, created, raw=False, **kwargs):
    """Keep PostHashtag rows in step with the #tags written in the content."""
    if raw:
        return
    for tag in instance.content_hashtags():
        PostHashtag.objects.get_or_create(post=instance, tag=tag)
