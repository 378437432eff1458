from django.contrib import admin

from .models import Document


@admin.register(Document)
class DocumentAdmin(admin.ModelAdmin):
    list_display = ("collection", "key", "version", "updated_at")
    list_filter = ("collection",)
    search_fields = ("key",)
    readonly_fields = ("collection", "key", "version", "body", "created_at", "updated_at")
