from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='StoredRecord',
            fields=[
                ('key', models.CharField(help_text='Namespaced store key', max_length=255, primary_key=True, serialize=False)),
                ('value', models.JSONField(blank=True, help_text='JSON record owned by the forum repositories', null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True, help_text='Creation timestamp')),
                ('updated_at', models.DateTimeField(auto_now=True, help_text='Last write timestamp')),
            ],
            options={
                'verbose_name': 'stored record',
                'verbose_name_plural': 'stored records',
                'ordering': ['key'],
            },
        ),
    ]
