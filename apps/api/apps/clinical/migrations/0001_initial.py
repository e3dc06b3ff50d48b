# Generated migration for clinical app - doctor, patient, appointment, messages

import uuid
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('core', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Doctor',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('display_name', models.CharField(max_length=255)),
                ('specialty', models.CharField(default='General Practice', max_length=100)),
                ('verification_status', models.CharField(
                    choices=[('pending', 'Pending'), ('verified', 'Verified'), ('rejected', 'Rejected')],
                    default='pending',
                    max_length=20
                )),
                ('rejection_reason', models.TextField(blank=True, null=True)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('clinic', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='doctors', to='core.clinic')),
                ('user', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='doctor_profile', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Doctor',
                'verbose_name_plural': 'Doctors',
                'db_table': 'doctor',
                'indexes': [
                    models.Index(fields=['clinic'], name='idx_doctor_clinic'),
                    models.Index(fields=['verification_status'], name='idx_doctor_verification'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Patient',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('first_name', models.CharField(max_length=100)),
                ('last_name', models.CharField(max_length=100)),
                ('phone', models.CharField(blank=True, max_length=50, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='patient_profile', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Patient',
                'verbose_name_plural': 'Patients',
                'db_table': 'patient',
            },
        ),
        migrations.CreateModel(
            name='Appointment',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('appointment_date', models.DateField()),
                ('appointment_time', models.CharField(help_text='HH:MM, clinic local time', max_length=5)),
                ('appointment_type', models.CharField(
                    choices=[('in-person', 'In Person'), ('virtual', 'Virtual')],
                    default='in-person',
                    max_length=20
                )),
                ('status', models.CharField(
                    choices=[
                        ('pending', 'Pending'),
                        ('confirmed', 'Confirmed'),
                        ('in_progress', 'In Progress'),
                        ('completed', 'Completed'),
                        ('cancelled', 'Cancelled')
                    ],
                    default='pending',
                    max_length=20
                )),
                ('reason', models.TextField(blank=True, null=True)),
                ('virtual_session_started', models.BooleanField(default=False)),
                ('virtual_session_ended', models.BooleanField(default=False)),
                ('session_start_time', models.DateTimeField(blank=True, null=True)),
                ('session_end_time', models.DateTimeField(blank=True, null=True)),
                ('meeting_room_id', models.CharField(blank=True, max_length=100, null=True)),
                ('meeting_link', models.URLField(blank=True, max_length=500, null=True)),
                ('reminder_sent_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('clinic', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='appointments', to='core.clinic')),
                ('doctor', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='appointments', to='clinical.doctor')),
                ('patient', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='appointments', to='clinical.patient')),
            ],
            options={
                'verbose_name': 'Appointment',
                'verbose_name_plural': 'Appointments',
                'db_table': 'appointment',
                'indexes': [
                    models.Index(fields=['patient'], name='idx_appointment_patient'),
                    models.Index(fields=['doctor'], name='idx_appointment_doctor'),
                    models.Index(fields=['appointment_date'], name='idx_appointment_date'),
                    models.Index(fields=['status'], name='idx_appointment_status'),
                ],
                'constraints': [
                    models.CheckConstraint(
                        condition=models.Q(('virtual_session_ended', False), ('virtual_session_started', True), _connector='OR'),
                        name='chk_appointment_session_ended_requires_started',
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name='AppointmentMessage',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('sender_role', models.CharField(max_length=20)),
                ('message', models.TextField()),
                ('is_follow_up', models.BooleanField(default=False)),
                ('is_read', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('appointment', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='messages', to='clinical.appointment')),
                ('sender', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='appointment_messages', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Appointment Message',
                'verbose_name_plural': 'Appointment Messages',
                'db_table': 'appointment_message',
                'ordering': ['created_at'],
                'indexes': [
                    models.Index(fields=['appointment', 'is_read'], name='idx_message_unread'),
                ],
            },
        ),
    ]
