from django.contrib import admin
from django.utils.html import format_html

from .models import StoredRecord


# ==================== ADMIN CLASSES ====================

@admin.register(StoredRecord)
class StoredRecordAdmin(admin.ModelAdmin):
    list_display = ('key', 'namespace_badge', 'value_short', 'updated_at')
    search_fields = ('key',)
    readonly_fields = ('created_at', 'updated_at')
    ordering = ('key',)
    actions = ['clear_forum_store']

    def namespace_badge(self, obj):
        deleted = obj.key.startswith('forum:deleted:')
        color = '#EF4444' if deleted else '#3B82F6'
        return format_html('<span style="color: {};">{}</span>', color, obj.namespace)
    namespace_badge.short_description = 'Namespace'

    def value_short(self, obj):
        text = str(obj.value)
        return text[:80] + '...' if len(text) > 80 else text
    value_short.short_description = 'Value'

    def clear_forum_store(self, request, queryset):
        from .apps import get_store
        store = get_store()
        store.clear_all_data()
        self.message_user(request, f"Forum store cleared ({store.backend.storage_type} storage)")
    clear_forum_store.short_description = "Clear ALL forum data (selection ignored)"


# ==================== ADMIN SITE CUSTOMIZATION ====================
admin.site.site_header = "Forum Data Store Admin"
admin.site.site_title = "Forum Admin"
admin.site.index_title = "Stored records"
