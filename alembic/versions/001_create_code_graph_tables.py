"""Create code intelligence graph tables

Revision ID: 001_code_graph
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_code_graph'
down_revision = None
branch_labels = None
depends_on = None


JSONType = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def _id_column():
    return sa.Column('id', sa.Uuid(as_uuid=False), nullable=False)


def _scope_columns():
    return [
        sa.Column('tenant_id', sa.String(128), nullable=False),
        sa.Column('repo_id', sa.String(256), nullable=False),
    ]


def _timestamp_columns():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Create graph, flow, dependency and diagnostic tables."""
    op.create_table(
        'cig_nodes',
        _id_column(),
        *_scope_columns(),
        sa.Column('symbol_uid', sa.String(1024), nullable=False),
        sa.Column('node_key', sa.String(1024), nullable=False),
        sa.Column('node_type', sa.String(64), nullable=False),
        sa.Column('qualified_name', sa.String(1024), nullable=True),
        sa.Column('name', sa.String(512), nullable=True),
        sa.Column('symbol_kind', sa.String(64), nullable=True),
        sa.Column('language', sa.String(64), nullable=True),
        sa.Column('file_path', sa.String(1024), nullable=True),
        sa.Column('line_start', sa.Integer(), nullable=True),
        sa.Column('line_end', sa.Integer(), nullable=True),
        sa.Column('visibility', sa.String(32), nullable=True),
        sa.Column('signature', sa.Text(), nullable=True),
        sa.Column('signature_hash', sa.String(64), nullable=True),
        sa.Column('declaration', sa.Text(), nullable=True),
        sa.Column('docstring', sa.Text(), nullable=True),
        sa.Column('parameters', JSONType, nullable=True),
        sa.Column('contract', JSONType, nullable=True),
        sa.Column('constraints', JSONType, nullable=True),
        sa.Column('allowable_values', JSONType, nullable=True),
        sa.Column('external_ref', JSONType, nullable=True),
        sa.Column('embedding', JSONType, nullable=True),
        sa.Column('embedding_text', sa.Text(), nullable=True),
        sa.Column('extra', JSONType, nullable=True),
        sa.Column('first_seen_sha', sa.String(64), nullable=False),
        sa.Column('last_seen_sha', sa.String(64), nullable=False),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'repo_id', 'symbol_uid', name='ux_cig_nodes_symbol'),
    )
    op.create_index('ix_cig_nodes_file', 'cig_nodes', ['tenant_id', 'repo_id', 'file_path'])

    op.create_table(
        'cig_edges',
        _id_column(),
        *_scope_columns(),
        sa.Column('source_node_id', sa.Uuid(as_uuid=False), nullable=False),
        sa.Column('target_node_id', sa.Uuid(as_uuid=False), nullable=False),
        sa.Column('source_symbol_uid', sa.String(1024), nullable=False),
        sa.Column('edge_type', sa.String(64), nullable=False),
        sa.Column('target_symbol_uid', sa.String(1024), nullable=False),
        sa.Column('metadata', JSONType, nullable=True),
        sa.Column('extra', JSONType, nullable=True),
        sa.Column('first_seen_sha', sa.String(64), nullable=False),
        sa.Column('last_seen_sha', sa.String(64), nullable=False),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['source_node_id'], ['cig_nodes.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['target_node_id'], ['cig_nodes.id'], ondelete='CASCADE'),
        sa.UniqueConstraint(
            'tenant_id', 'repo_id', 'source_symbol_uid', 'edge_type', 'target_symbol_uid',
            name='ux_cig_edges_natural'
        ),
    )
    op.create_index('ix_cig_edges_source', 'cig_edges', ['tenant_id', 'repo_id', 'source_symbol_uid'])
    op.create_index('ix_cig_edges_target', 'cig_edges', ['tenant_id', 'repo_id', 'target_symbol_uid'])

    op.create_table(
        'cig_edge_occurrences',
        _id_column(),
        *_scope_columns(),
        sa.Column('edge_id', sa.Uuid(as_uuid=False), nullable=False),
        sa.Column('file_path', sa.String(1024), nullable=False),
        sa.Column('line_start', sa.Integer(), nullable=False),
        sa.Column('line_end', sa.Integer(), nullable=False),
        sa.Column('occurrence_kind', sa.String(32), nullable=False),
        sa.Column('sha', sa.String(64), nullable=False),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['edge_id'], ['cig_edges.id'], ondelete='CASCADE'),
        sa.UniqueConstraint(
            'edge_id', 'file_path', 'line_start', 'line_end',
            name='ux_cig_edge_occurrences_site'
        ),
    )
    op.create_index('ix_cig_edge_occurrences_edge_id', 'cig_edge_occurrences', ['edge_id'])
    op.create_index(
        'ix_cig_edge_occurrences_file',
        'cig_edge_occurrences',
        ['tenant_id', 'repo_id', 'file_path']
    )

    op.create_table(
        'cig_unresolved_imports',
        _id_column(),
        *_scope_columns(),
        sa.Column('file_path', sa.String(1024), nullable=False),
        sa.Column('line', sa.Integer(), nullable=False),
        sa.Column('spec', sa.String(1024), nullable=False),
        sa.Column('kind', sa.String(32), nullable=True),
        sa.Column('sha', sa.String(64), nullable=False),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'tenant_id', 'repo_id', 'file_path', 'line', 'spec', 'sha',
            name='ux_cig_unresolved_imports_site'
        ),
    )

    op.create_table(
        'cig_flow_entrypoints',
        _id_column(),
        *_scope_columns(),
        sa.Column('entrypoint_key', sa.String(1024), nullable=False),
        sa.Column('entrypoint_type', sa.String(64), nullable=False),
        sa.Column('method', sa.String(16), nullable=True),
        sa.Column('path', sa.String(1024), nullable=True),
        sa.Column('symbol_uid', sa.String(1024), nullable=True),
        sa.Column('file_path', sa.String(1024), nullable=True),
        sa.Column('line_start', sa.Integer(), nullable=True),
        sa.Column('line_end', sa.Integer(), nullable=True),
        sa.Column('sha', sa.String(64), nullable=True),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'repo_id', 'entrypoint_key', name='ux_cig_flow_entrypoints_key'),
    )

    op.create_table(
        'cig_flow_graphs',
        _id_column(),
        *_scope_columns(),
        sa.Column('entrypoint_key', sa.String(1024), nullable=False),
        sa.Column('sha', sa.String(64), nullable=False),
        sa.Column('depth', sa.Integer(), nullable=False),
        sa.Column('start_symbol_uid', sa.String(1024), nullable=False),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'tenant_id', 'repo_id', 'entrypoint_key', 'sha', 'depth',
            name='ux_cig_flow_graphs_key'
        ),
    )

    op.create_table(
        'cig_flow_graph_nodes',
        sa.Column('flow_graph_id', sa.Uuid(as_uuid=False), nullable=False),
        sa.Column('symbol_uid', sa.String(1024), nullable=False),
        sa.PrimaryKeyConstraint('flow_graph_id', 'symbol_uid'),
        sa.ForeignKeyConstraint(['flow_graph_id'], ['cig_flow_graphs.id'], ondelete='CASCADE'),
    )

    op.create_table(
        'cig_flow_graph_edges',
        sa.Column('flow_graph_id', sa.Uuid(as_uuid=False), nullable=False),
        sa.Column('source_symbol_uid', sa.String(1024), nullable=False),
        sa.Column('edge_type', sa.String(64), nullable=False),
        sa.Column('target_symbol_uid', sa.String(1024), nullable=False),
        sa.PrimaryKeyConstraint('flow_graph_id', 'source_symbol_uid', 'edge_type', 'target_symbol_uid'),
        sa.ForeignKeyConstraint(['flow_graph_id'], ['cig_flow_graphs.id'], ondelete='CASCADE'),
    )

    op.create_table(
        'cig_dependency_manifests',
        _id_column(),
        *_scope_columns(),
        sa.Column('manifest_type', sa.String(64), nullable=True),
        sa.Column('file_path', sa.String(1024), nullable=False),
        sa.Column('sha', sa.String(64), nullable=False),
        sa.Column('parsed', JSONType, nullable=True),
        sa.Column('indexed_at', sa.DateTime(timezone=True), nullable=False),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'repo_id', 'file_path', 'sha', name='ux_cig_manifests_key'),
    )

    op.create_table(
        'cig_declared_dependencies',
        _id_column(),
        *_scope_columns(),
        sa.Column('manifest_key', sa.String(1100), nullable=False),
        sa.Column('package_key', sa.String(512), nullable=False),
        sa.Column('scope', sa.String(64), nullable=False),
        sa.Column('version_range', sa.String(256), nullable=True),
        sa.Column('metadata', JSONType, nullable=True),
        sa.Column('sha', sa.String(64), nullable=True),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'tenant_id', 'repo_id', 'manifest_key', 'package_key', 'scope',
            name='ux_cig_declared_key'
        ),
    )

    op.create_table(
        'cig_observed_dependencies',
        _id_column(),
        *_scope_columns(),
        sa.Column('source_symbol_uid', sa.String(1024), nullable=False),
        sa.Column('package_key', sa.String(512), nullable=False),
        sa.Column('file_path', sa.String(1024), nullable=True),
        sa.Column('evidence', JSONType, nullable=True),
        sa.Column('first_seen_sha', sa.String(64), nullable=False),
        sa.Column('last_seen_sha', sa.String(64), nullable=False),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'tenant_id', 'repo_id', 'source_symbol_uid', 'package_key',
            name='ux_cig_observed_key'
        ),
    )

    op.create_table(
        'cig_dependency_mismatches',
        _id_column(),
        *_scope_columns(),
        sa.Column('sha', sa.String(64), nullable=False),
        sa.Column('mismatch_type', sa.String(32), nullable=False),
        sa.Column('package_key', sa.String(512), nullable=False),
        sa.Column('details', JSONType, nullable=False),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'tenant_id', 'repo_id', 'sha', 'mismatch_type', 'package_key',
            name='ux_cig_mismatches_key'
        ),
    )
    op.create_index('ix_cig_mismatches_sha', 'cig_dependency_mismatches', ['tenant_id', 'repo_id', 'sha'])

    op.create_table(
        'cig_index_diagnostics',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        *_scope_columns(),
        sa.Column('sha', sa.String(64), nullable=False),
        sa.Column('mode', sa.String(16), nullable=False),
        sa.Column('changed_files', JSONType, nullable=False),
        sa.Column('removed_files', JSONType, nullable=False),
        sa.Column('impacted_files', JSONType, nullable=False),
        sa.Column('reparsed_files', JSONType, nullable=False),
        sa.Column('impacted_symbol_uids', JSONType, nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_cig_index_diagnostics_scope',
        'cig_index_diagnostics',
        ['tenant_id', 'repo_id', 'id']
    )


def downgrade() -> None:
    """Drop all code graph tables."""
    op.drop_index('ix_cig_index_diagnostics_scope', table_name='cig_index_diagnostics')
    op.drop_table('cig_index_diagnostics')

    op.drop_index('ix_cig_mismatches_sha', table_name='cig_dependency_mismatches')
    op.drop_table('cig_dependency_mismatches')
    op.drop_table('cig_observed_dependencies')
    op.drop_table('cig_declared_dependencies')
    op.drop_table('cig_dependency_manifests')

    op.drop_table('cig_flow_graph_edges')
    op.drop_table('cig_flow_graph_nodes')
    op.drop_table('cig_flow_graphs')
    op.drop_table('cig_flow_entrypoints')

    op.drop_table('cig_unresolved_imports')
    op.drop_index('ix_cig_edge_occurrences_file', table_name='cig_edge_occurrences')
    op.drop_index('ix_cig_edge_occurrences_edge_id', table_name='cig_edge_occurrences')
    op.drop_table('cig_edge_occurrences')
    op.drop_index('ix_cig_edges_target', table_name='cig_edges')
    op.drop_index('ix_cig_edges_source', table_name='cig_edges')
    op.drop_table('cig_edges')
    op.drop_index('ix_cig_nodes_file', table_name='cig_nodes')
    op.drop_table('cig_nodes')
