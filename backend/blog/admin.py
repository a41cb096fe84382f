"""
Django Admin Configuration for Blog Models
"""
from django.contrib import admin
from .models import Profile, Tag, Post, Comment


@admin.register(Profile)
class ProfileAdmin(admin.ModelAdmin):
    list_display = ['user', 'role', 'status', 'email_verified']
    list_filter = ['role', 'status', 'email_verified']
    search_fields = ['user__username', 'user__email']


@admin.register(Tag)
class TagAdmin(admin.ModelAdmin):
    list_display = ['name']
    search_fields = ['name']


@admin.register(Post)
class PostAdmin(admin.ModelAdmin):
    list_display = ['title', 'author', 'status', 'is_featured', 'views', 'created_at']
    list_filter = ['status', 'is_featured', 'created_at']
    search_fields = ['title', 'content', 'author__username']
    filter_horizontal = ['tags']
    readonly_fields = ['views', 'created_at', 'updated_at']


@admin.register(Comment)
class CommentAdmin(admin.ModelAdmin):
    list_display = ['id', 'post', 'author', 'parent', 'status', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['content', 'author__username']
    readonly_fields = ['post', 'parent', 'created_at', 'updated_at']
    actions = ['approve', 'reject']

    @admin.action(description='Approve selected comments')
    def approve(self, request, queryset):
        queryset.update(status=Comment.Status.APPROVED)

    @admin.action(description='Reject selected comments')
    def reject(self, request, queryset):
        queryset.update(status=Comment.Status.REJECTED)
